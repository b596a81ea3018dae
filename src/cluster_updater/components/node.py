"""Node-backed component.

The controller never touches a node's software directly. It records the
desired version in a node annotation; an agent on the node performs the
upgrade and the kubelet then reports the new version in its node status.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import InvalidVersionError
from .base import (
    NODE_PRIORITY,
    VERSION_ANNOTATION,
    log_at_target,
    obj_name,
    resolve_priority,
)
from .version import Version

logger = logging.getLogger(__name__)


class NodeComponent:
    """A cluster node, versioned by annotation."""

    kind = 'Node'

    def __init__(self, client: Any, obj: dict[str, Any]) -> None:
        self._client = client
        self._obj = obj
        self._priority = resolve_priority(obj, NODE_PRIORITY)

    def __repr__(self) -> str:
        return f'NodeComponent(name={self.name!r}, priority={self.priority})'

    @property
    def name(self) -> str:
        return obj_name(self._obj)

    @property
    def priority(self) -> int:
        return self._priority

    def version(self) -> Version:
        annotations = (self._obj.get('metadata') or {}).get('annotations') or {}
        raw = annotations.get(VERSION_ANNOTATION)
        if raw is None:
            raise InvalidVersionError('', f'node {self.name!r} has no {VERSION_ANNOTATION} annotation')
        return Version.parse(raw)

    def kubelet_version(self) -> str:
        node_info = (self._obj.get('status') or {}).get('nodeInfo') or {}
        return node_info.get('kubeletVersion', '')

    def converged(self, target: Version) -> bool:
        if self.version() != target:
            return False
        try:
            return Version.parse(self.kubelet_version()) == target
        except InvalidVersionError:
            return False

    async def update_to_version(self, target: Version) -> bool:
        if self.version() == target:
            log_at_target(self, target)
            return False

        logger.info(
            'Requesting node %s move from %s to %s',
            self.name,
            self.version(),
            target,
            extra={'component': self.name, 'kind': self.kind},
        )
        await self._client.patch_node_annotations(
            self.name, {VERSION_ANNOTATION: str(target)},
        )
        return True
