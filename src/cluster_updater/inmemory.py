"""In-memory cluster API for local development and tests.

Used when ENVIRONMENT=local. Satisfies the ``ClusterAPI`` protocol but keeps
every object in dicts; patches are applied to the stored objects and fanned
out to open watches the way an API server would.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any, AsyncIterator, Mapping

from .kube.client import KubeAPIError, KubeGoneError, KubeNotFoundError
from .kube.informer import object_key
from .kube.labels import parse_selector

_CLOSE = object()
_EXPIRE = object()


class InMemoryKubeClient:
    def __init__(self, *, patch_fails: bool = False) -> None:
        self.patch_fails = patch_fails
        self.calls: list[tuple[str, str]] = []
        self._objects: dict[str, dict[str, dict[str, Any]]] = {}
        self._resource_version = 0
        self._watchers: list[tuple[str, asyncio.Queue]] = []

    # ── Cluster-side mutation (what other actors would do) ─────────

    def _bump(self, obj: dict[str, Any]) -> None:
        self._resource_version += 1
        obj.setdefault('metadata', {})['resourceVersion'] = str(self._resource_version)

    def _broadcast(self, kind: str, event_type: str, obj: dict[str, Any]) -> None:
        for watched_kind, queue in self._watchers:
            if watched_kind == kind:
                queue.put_nowait({'type': event_type, 'object': copy.deepcopy(obj)})

    def add(self, kind: str, obj: dict[str, Any]) -> dict[str, Any]:
        """Create or replace an object."""
        obj = copy.deepcopy(obj)
        self._bump(obj)
        store = self._objects.setdefault(kind, {})
        event_type = 'MODIFIED' if object_key(obj) in store else 'ADDED'
        store[object_key(obj)] = obj
        self._broadcast(kind, event_type, obj)
        return obj

    def delete(self, kind: str, name: str, *, namespace: str | None = None) -> None:
        key = f'{namespace}/{name}' if namespace else name
        obj = self._objects.get(kind, {}).pop(key, None)
        if obj is None:
            raise KubeNotFoundError(f'{kind} {key} not found')
        self._bump(obj)
        self._broadcast(kind, 'DELETED', obj)

    def get(self, kind: str, name: str, *, namespace: str | None = None) -> dict[str, Any]:
        key = f'{namespace}/{name}' if namespace else name
        try:
            return self._objects[kind][key]
        except KeyError:
            raise KubeNotFoundError(f'{kind} {key} not found') from None

    def expire_watches(self) -> None:
        """Make every open watch fail with 410 Gone."""
        for _, queue in self._watchers:
            queue.put_nowait(_EXPIRE)

    def close_watches(self) -> None:
        """End every open watch stream cleanly."""
        for _, queue in self._watchers:
            queue.put_nowait(_CLOSE)

    # ── ClusterAPI ─────────────────────────────────────────────────

    async def list_objects(
        self,
        kind: str,
        *,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(('list_objects', kind))
        selector = parse_selector(label_selector or '')
        items = []
        for obj in self._objects.get(kind, {}).values():
            meta = obj.get('metadata') or {}
            if namespace and meta.get('namespace') != namespace:
                continue
            if selector.matches(meta.get('labels')):
                items.append(copy.deepcopy(obj))
        return {
            'kind': f'{kind}List',
            'metadata': {'resourceVersion': str(self._resource_version)},
            'items': items,
        }

    async def watch_objects(
        self,
        kind: str,
        *,
        namespace: str | None = None,
        label_selector: str | None = None,
        resource_version: str | None = None,
        timeout_seconds: int = 300,
    ) -> AsyncIterator[dict[str, Any]]:
        self.calls.append(('watch_objects', kind))
        selector = parse_selector(label_selector or '')
        queue: asyncio.Queue = asyncio.Queue()
        entry = (kind, queue)
        self._watchers.append(entry)
        try:
            while True:
                event = await queue.get()
                if event is _CLOSE:
                    return
                if event is _EXPIRE:
                    raise KubeGoneError()
                meta = event['object'].get('metadata') or {}
                if namespace and meta.get('namespace') != namespace:
                    continue
                if selector.matches(meta.get('labels')):
                    yield event
        finally:
            self._watchers.remove(entry)

    async def patch_node_annotations(
        self, name: str, annotations: Mapping[str, str],
    ) -> dict[str, Any]:
        self.calls.append(('patch_node_annotations', name))
        if self.patch_fails:
            raise KubeAPIError(500, 'node patch failed')
        node = copy.deepcopy(self.get('Node', name))
        node['metadata'].setdefault('annotations', {}).update(annotations)
        return self.add('Node', node)

    async def patch_container_image(
        self,
        kind: str,
        name: str,
        *,
        namespace: str,
        container: str,
        image: str,
    ) -> dict[str, Any]:
        self.calls.append(('patch_container_image', f'{kind}/{name}'))
        if self.patch_fails:
            raise KubeAPIError(500, f'{kind} patch failed')
        obj = copy.deepcopy(self.get(kind, name, namespace=namespace))
        containers = obj['spec']['template']['spec']['containers']
        for c in containers:
            if c['name'] == container:
                c['image'] = image
                break
        else:
            containers.append({'name': container, 'image': image})
        meta = obj['metadata']
        meta['generation'] = meta.get('generation', 1) + 1
        return self.add(kind, obj)

    async def get_config_map(self, name: str, *, namespace: str) -> dict[str, Any]:
        self.calls.append(('get_config_map', name))
        return copy.deepcopy(self.get('ConfigMap', name, namespace=namespace))
