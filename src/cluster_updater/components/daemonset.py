"""DaemonSet-backed component.

Patching the pod template is not enough to call a DaemonSet converged: the
pods the controller rolls must actually be running the target image. The
pod cache is filtered by the DaemonSet's own selector to check that.
"""

from __future__ import annotations

from typing import Any

from ..errors import InvalidVersionError
from ..kube.informer import PodLister
from ..kube.labels import selector_from_spec
from .base import DAEMONSET_PRIORITY, WorkloadComponent
from .version import Version, version_from_image


def pod_is_ready(pod: dict[str, Any]) -> bool:
    for condition in (pod.get('status') or {}).get('conditions') or []:
        if condition.get('type') == 'Ready':
            return condition.get('status') == 'True'
    return False


def pod_container_image(pod: dict[str, Any], container: str) -> str | None:
    for c in (pod.get('spec') or {}).get('containers') or []:
        if c.get('name') == container:
            return c.get('image')
    return None


class DaemonSetComponent(WorkloadComponent):
    """A workload replicated onto every matching node."""

    kind = 'DaemonSet'
    default_priority = DAEMONSET_PRIORITY

    def __init__(self, client: Any, obj: dict[str, Any], pods: PodLister) -> None:
        super().__init__(client, obj)
        self._selector = selector_from_spec((obj.get('spec') or {}).get('selector'))
        self._pods = pods

    def pods(self) -> list[dict[str, Any]]:
        return self._pods.pods_for_selector(self._selector, namespace=self.namespace)

    def converged(self, target: Version) -> bool:
        if self.version() != target:
            return False

        status = self._obj.get('status') or {}
        desired = status.get('desiredNumberScheduled', 0)
        pods = self.pods()
        if len(pods) < desired:
            return False

        container = self._container['name']
        for pod in pods:
            image = pod_container_image(pod, container)
            if image is None or not pod_is_ready(pod):
                return False
            try:
                if version_from_image(image) != target:
                    return False
            except InvalidVersionError:
                return False
        return True
