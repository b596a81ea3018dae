"""Node, DaemonSet and Deployment components."""

from __future__ import annotations

import pytest

from cluster_updater.components import (
    DAEMONSET_PRIORITY,
    DEPLOYMENT_PRIORITY,
    NODE_PRIORITY,
    PRIORITY_ANNOTATION,
    VERSION_ANNOTATION,
    DaemonSetComponent,
    DeploymentComponent,
    NodeComponent,
    Version,
)
from cluster_updater.errors import InvalidVersionError
from cluster_updater.inmemory import InMemoryKubeClient
from cluster_updater.kube.client import KubeAPIError
from cluster_updater.kube.informer import PodLister, Store

HYPERKUBE = 'quay.io/coreos/hyperkube'
V120 = Version.parse('1.2.0')
V130 = Version.parse('1.3.0')


def _daemon_set(
    name: str = 'kube-apiserver',
    tag: str = 'v1.2.0',
    *,
    desired: int = 2,
    annotations: dict | None = None,
) -> dict:
    return {
        'metadata': {
            'name': name,
            'namespace': 'kube-system',
            'labels': {'update-controller-managed': 'true', 'k8s-app': name},
            'annotations': annotations or {},
        },
        'spec': {
            'selector': {'matchLabels': {'k8s-app': name}},
            'template': {
                'metadata': {'labels': {'k8s-app': name}},
                'spec': {'containers': [
                    {'name': 'sidecar', 'image': 'busybox:1.36'},
                    {'name': name, 'image': f'{HYPERKUBE}:{tag}'},
                ]},
            },
        },
        'status': {'desiredNumberScheduled': desired},
    }


def _pod(name: str, app: str, tag: str, *, ready: bool = True) -> dict:
    return {
        'metadata': {'name': name, 'namespace': 'kube-system', 'labels': {'k8s-app': app}},
        'spec': {'containers': [{'name': app, 'image': f'{HYPERKUBE}:{tag}'}]},
        'status': {'conditions': [{'type': 'Ready', 'status': 'True' if ready else 'False'}]},
    }


def _pods(*pods: dict) -> PodLister:
    store = Store('Pod')
    store.replace(pods)
    return PodLister(store)


def _deployment(
    name: str = 'kube-controller-manager',
    tag: str = 'v1.2.0',
    *,
    replicas: int = 2,
    ready: int = 2,
    updated: int = 2,
    generation: int = 1,
    observed: int = 1,
) -> dict:
    return {
        'metadata': {
            'name': name,
            'namespace': 'kube-system',
            'generation': generation,
            'labels': {'update-controller-managed': 'true'},
        },
        'spec': {
            'replicas': replicas,
            'selector': {'matchLabels': {'k8s-app': name}},
            'template': {'spec': {'containers': [{'name': name, 'image': f'{HYPERKUBE}:{tag}'}]}},
        },
        'status': {
            'observedGeneration': observed,
            'readyReplicas': ready,
            'updatedReplicas': updated,
        },
    }


def _node(name: str = 'node-1', version: str | None = '1.2.0', kubelet: str = 'v1.2.0') -> dict:
    annotations = {VERSION_ANNOTATION: version} if version is not None else {}
    return {
        'metadata': {
            'name': name,
            'labels': {'update-controller-managed': 'true'},
            'annotations': annotations,
        },
        'status': {'nodeInfo': {'kubeletVersion': kubelet}},
    }


# ── DaemonSet ────────────────────────────────────────────────────────


class TestDaemonSetComponent:
    def test_reads_version_from_named_container(self):
        ds = DaemonSetComponent(InMemoryKubeClient(), _daemon_set(), _pods())
        assert ds.name == 'kube-apiserver'
        assert ds.kind == 'DaemonSet'
        assert ds.priority == DAEMONSET_PRIORITY
        assert ds.version() == V120

    def test_falls_back_to_first_container(self):
        obj = _daemon_set()
        obj['spec']['template']['spec']['containers'] = [
            {'name': 'apiserver', 'image': f'{HYPERKUBE}:v1.2.0'},
        ]
        assert DaemonSetComponent(InMemoryKubeClient(), obj, _pods()).version() == V120

    def test_no_containers_is_construction_error(self):
        obj = _daemon_set()
        obj['spec']['template']['spec']['containers'] = []
        with pytest.raises(ValueError, match='no containers'):
            DaemonSetComponent(InMemoryKubeClient(), obj, _pods())

    def test_priority_override(self):
        obj = _daemon_set(annotations={PRIORITY_ANNOTATION: '5'})
        assert DaemonSetComponent(InMemoryKubeClient(), obj, _pods()).priority == 5

    def test_bad_priority_override(self):
        obj = _daemon_set(annotations={PRIORITY_ANNOTATION: 'high'})
        with pytest.raises(ValueError, match='not an integer'):
            DaemonSetComponent(InMemoryKubeClient(), obj, _pods())

    def test_unparsable_tag_is_hard_error(self):
        ds = DaemonSetComponent(InMemoryKubeClient(), _daemon_set(tag='latest'), _pods())
        with pytest.raises(InvalidVersionError):
            ds.version()

    @pytest.mark.asyncio
    async def test_update_patches_versioned_container(self):
        client = InMemoryKubeClient()
        client.add('DaemonSet', _daemon_set(tag='v1.2.0_coreos.0'))
        ds = DaemonSetComponent(client, client.get('DaemonSet', 'kube-apiserver', namespace='kube-system'), _pods())

        assert await ds.update_to_version(Version.parse('1.3.0+coreos.0')) is True

        stored = client.get('DaemonSet', 'kube-apiserver', namespace='kube-system')
        images = {c['name']: c['image'] for c in stored['spec']['template']['spec']['containers']}
        assert images == {
            'sidecar': 'busybox:1.36',
            'kube-apiserver': f'{HYPERKUBE}:v1.3.0_coreos.0',
        }

    @pytest.mark.asyncio
    async def test_no_patch_when_template_at_target(self):
        client = InMemoryKubeClient()
        ds = DaemonSetComponent(
            client,
            _daemon_set(tag='v1.3.0'),
            _pods(_pod('a', 'kube-apiserver', 'v1.3.0'), _pod('b', 'kube-apiserver', 'v1.3.0')),
        )
        assert await ds.update_to_version(V130) is False
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_partial_rollout_does_not_repatch(self):
        client = InMemoryKubeClient()
        pods = _pods(
            _pod('a', 'kube-apiserver', 'v1.3.0'),
            _pod('b', 'kube-apiserver', 'v1.2.0'),
        )
        ds = DaemonSetComponent(client, _daemon_set(tag='v1.3.0'), pods)

        assert ds.converged(V130) is False
        assert await ds.update_to_version(V130) is False
        assert await ds.update_to_version(V130) is False
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_patch_failure_propagates(self):
        client = InMemoryKubeClient(patch_fails=True)
        client.add('DaemonSet', _daemon_set())
        ds = DaemonSetComponent(client, _daemon_set(), _pods())
        with pytest.raises(KubeAPIError):
            await ds.update_to_version(V130)

    def test_converged_when_all_pods_ready_at_target(self):
        ds = DaemonSetComponent(
            InMemoryKubeClient(),
            _daemon_set(tag='v1.3.0'),
            _pods(_pod('a', 'kube-apiserver', 'v1.3.0'), _pod('b', 'kube-apiserver', 'v1.3.0')),
        )
        assert ds.converged(V130) is True

    def test_not_converged_with_unready_pod(self):
        ds = DaemonSetComponent(
            InMemoryKubeClient(),
            _daemon_set(tag='v1.3.0'),
            _pods(_pod('a', 'kube-apiserver', 'v1.3.0'), _pod('b', 'kube-apiserver', 'v1.3.0', ready=False)),
        )
        assert ds.converged(V130) is False

    def test_not_converged_with_missing_pods(self):
        ds = DaemonSetComponent(
            InMemoryKubeClient(),
            _daemon_set(tag='v1.3.0', desired=3),
            _pods(_pod('a', 'kube-apiserver', 'v1.3.0'), _pod('b', 'kube-apiserver', 'v1.3.0')),
        )
        assert ds.converged(V130) is False

    def test_ignores_pods_of_other_workloads(self):
        ds = DaemonSetComponent(
            InMemoryKubeClient(),
            _daemon_set(tag='v1.3.0', desired=1),
            _pods(_pod('a', 'kube-apiserver', 'v1.3.0'), _pod('p', 'kube-proxy', 'v1.2.0')),
        )
        assert ds.converged(V130) is True

    def test_not_converged_when_template_behind(self):
        ds = DaemonSetComponent(
            InMemoryKubeClient(),
            _daemon_set(tag='v1.2.0', desired=1),
            _pods(_pod('a', 'kube-apiserver', 'v1.3.0')),
        )
        assert ds.converged(V130) is False


# ── Deployment ───────────────────────────────────────────────────────


class TestDeploymentComponent:
    def test_basics(self):
        dp = DeploymentComponent(InMemoryKubeClient(), _deployment())
        assert dp.kind == 'Deployment'
        assert dp.priority == DEPLOYMENT_PRIORITY
        assert dp.version() == V120

    @pytest.mark.asyncio
    async def test_update_patches_image(self):
        client = InMemoryKubeClient()
        client.add('Deployment', _deployment())
        dp = DeploymentComponent(client, _deployment())

        assert await dp.update_to_version(V130) is True
        assert client.calls == [('patch_container_image', 'Deployment/kube-controller-manager')]
        stored = client.get('Deployment', 'kube-controller-manager', namespace='kube-system')
        assert stored['spec']['template']['spec']['containers'][0]['image'] == f'{HYPERKUBE}:v1.3.0'

    @pytest.mark.asyncio
    async def test_rolling_deployment_not_touched(self):
        client = InMemoryKubeClient()
        dp = DeploymentComponent(client, _deployment(tag='v1.3.0', ready=1, updated=1))
        assert dp.converged(V130) is False
        assert await dp.update_to_version(V130) is False
        assert client.calls == []

    def test_converged_requires_matching_replica_counts(self):
        assert DeploymentComponent(InMemoryKubeClient(), _deployment(tag='v1.3.0')).converged(V130)
        assert not DeploymentComponent(
            InMemoryKubeClient(), _deployment(tag='v1.3.0', ready=2, updated=1),
        ).converged(V130)

    def test_stale_observed_generation_not_converged(self):
        dp = DeploymentComponent(
            InMemoryKubeClient(), _deployment(tag='v1.3.0', generation=3, observed=2),
        )
        assert dp.converged(V130) is False

    def test_scaled_to_zero_is_converged(self):
        dp = DeploymentComponent(
            InMemoryKubeClient(), _deployment(tag='v1.3.0', replicas=0, ready=0, updated=0),
        )
        assert dp.converged(V130) is True


# ── Node ─────────────────────────────────────────────────────────────


class TestNodeComponent:
    def test_basics(self):
        node = NodeComponent(InMemoryKubeClient(), _node())
        assert node.name == 'node-1'
        assert node.kind == 'Node'
        assert node.priority == NODE_PRIORITY
        assert node.version() == V120

    def test_missing_annotation_is_hard_error(self):
        node = NodeComponent(InMemoryKubeClient(), _node(version=None))
        with pytest.raises(InvalidVersionError, match=VERSION_ANNOTATION):
            node.version()

    @pytest.mark.asyncio
    async def test_update_sets_annotation(self):
        client = InMemoryKubeClient()
        client.add('Node', _node())
        node = NodeComponent(client, _node())

        assert await node.update_to_version(V130) is True
        stored = client.get('Node', 'node-1')
        assert stored['metadata']['annotations'][VERSION_ANNOTATION] == '1.3.0'

    @pytest.mark.asyncio
    async def test_annotated_node_waiting_on_agent_not_touched(self):
        client = InMemoryKubeClient()
        node = NodeComponent(client, _node(version='1.3.0', kubelet='v1.2.0'))
        assert node.converged(V130) is False
        assert await node.update_to_version(V130) is False
        assert client.calls == []

    def test_converged_when_kubelet_reports_target(self):
        node = NodeComponent(InMemoryKubeClient(), _node(version='1.3.0', kubelet='v1.3.0+coreos.0'))
        assert node.converged(V130) is True

    def test_unparsable_kubelet_version_not_converged(self):
        node = NodeComponent(InMemoryKubeClient(), _node(version='1.3.0', kubelet='unknown'))
        assert node.converged(V130) is False
