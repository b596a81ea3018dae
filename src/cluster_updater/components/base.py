"""Component contract shared by every managed resource kind.

A component is a point-in-time snapshot of one live cluster object. It is
built fresh for each update attempt and never reused, so every decision it
makes is based on the state observed for that attempt.

Priority encodes dependency order: lower numbers are depended upon by
higher numbers. Upgrades walk ascending priority, rollbacks descending.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol, runtime_checkable

from .version import Version, image_for_version, version_from_image

logger = logging.getLogger(__name__)

MANAGED_LABEL = 'update-controller-managed'
MANAGED_SELECTOR = f'{MANAGED_LABEL}=true'

PRIORITY_ANNOTATION = 'cluster-updater.io/priority'
VERSION_ANNOTATION = 'cluster-updater.io/version'

# The API-serving tier runs as a DaemonSet; controllers and schedulers run
# as Deployments against it; node agents are rolled last.
DAEMONSET_PRIORITY = 100
DEPLOYMENT_PRIORITY = 200
NODE_PRIORITY = 300


@runtime_checkable
class Component(Protocol):
    """One updatable piece of the cluster."""

    @property
    def name(self) -> str: ...

    @property
    def kind(self) -> str: ...

    @property
    def priority(self) -> int: ...

    def version(self) -> Version:
        """Current version. Raises ``InvalidVersionError``; never defaults."""
        ...

    def converged(self, target: Version) -> bool:
        """True if the live state has fully settled at ``target``."""
        ...

    async def update_to_version(self, target: Version) -> bool:
        """Issue at most one write moving toward ``target``.

        Returns True only if a write was issued.
        """
        ...


def resolve_priority(obj: Mapping[str, Any], default: int) -> int:
    """Priority from the override annotation, else the variant default."""
    annotations = (obj.get('metadata') or {}).get('annotations') or {}
    raw = annotations.get(PRIORITY_ANNOTATION)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValueError(
            f'{PRIORITY_ANNOTATION} on {obj_name(obj)!r} is not an integer: {raw!r}'
        ) from None


def log_at_target(component: Component, target: Version) -> None:
    """Record whether a component already at ``target`` has settled."""
    if component.converged(target):
        logger.debug('%s %s is converged at %s', component.kind, component.name, target)
    else:
        logger.info(
            '%s %s is at %s but still rolling out, leaving it alone',
            component.kind,
            component.name,
            target,
            extra={'component': component.name, 'kind': component.kind},
        )


def obj_name(obj: Mapping[str, Any]) -> str:
    return (obj.get('metadata') or {}).get('name', '')


def obj_namespace(obj: Mapping[str, Any]) -> str:
    return (obj.get('metadata') or {}).get('namespace', '')


def pod_template_containers(obj: Mapping[str, Any]) -> list[dict[str, Any]]:
    template = (obj.get('spec') or {}).get('template') or {}
    return list((template.get('spec') or {}).get('containers') or [])


def versioned_container(obj: Mapping[str, Any]) -> dict[str, Any]:
    """The container whose image tag carries the workload's version.

    A container named after the workload wins; otherwise the first one.
    """
    containers = pod_template_containers(obj)
    if not containers:
        raise ValueError(f'{obj_name(obj)!r} has no containers in its pod template')
    for container in containers:
        if container.get('name') == obj_name(obj):
            return container
    return containers[0]


class WorkloadComponent:
    """Shared behaviour of the pod-template backed variants.

    Subclasses set ``kind`` and ``default_priority`` and implement
    ``converged``.
    """

    kind = ''
    default_priority = 0

    def __init__(self, client: Any, obj: dict[str, Any]) -> None:
        self._client = client
        self._obj = obj
        self._priority = resolve_priority(obj, self.default_priority)
        self._container = versioned_container(obj)

    def __repr__(self) -> str:
        return f'{type(self).__name__}(name={self.name!r}, priority={self.priority})'

    @property
    def name(self) -> str:
        return obj_name(self._obj)

    @property
    def namespace(self) -> str:
        return obj_namespace(self._obj)

    @property
    def priority(self) -> int:
        return self._priority

    @property
    def image(self) -> str:
        return self._container.get('image', '')

    def version(self) -> Version:
        return version_from_image(self.image)

    def converged(self, target: Version) -> bool:
        raise NotImplementedError

    async def update_to_version(self, target: Version) -> bool:
        if self.version() == target:
            log_at_target(self, target)
            return False

        logger.info(
            'Updating %s %s from %s to %s',
            self.kind,
            self.name,
            self.version(),
            target,
            extra={'component': self.name, 'kind': self.kind},
        )
        await self._client.patch_container_image(
            self.kind,
            self.name,
            namespace=self.namespace,
            container=self._container['name'],
            image=image_for_version(self.image, target),
        )
        return True
