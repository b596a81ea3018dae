"""Read-through caches kept fresh by list+watch loops.

Each ``Informer`` owns one ``Store`` and runs forever as an asyncio task:

  list -> watch from the list's resourceVersion -> apply events
  -> relist on 410 Gone, on any error (after a delay), and every resync period

Listers are the read side handed to catalog construction. Nothing but the
informer loop ever writes to a store.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

from ..errors import CacheNotSyncedError
from ..observability.metrics import INFORMER_ERRORS_TOTAL, INFORMER_RELISTS_TOTAL
from ..protocols import ClusterAPI
from .client import KubeGoneError
from .labels import Selector

logger = logging.getLogger(__name__)

DEFAULT_RESYNC_SECONDS = 30 * 60
DEFAULT_WATCH_TIMEOUT_SECONDS = 5 * 60
DEFAULT_ERROR_DELAY_SECONDS = 5.0


def object_key(obj: dict[str, Any]) -> str:
    meta = obj.get('metadata') or {}
    namespace = meta.get('namespace')
    name = meta.get('name', '')
    return f'{namespace}/{name}' if namespace else name


class Store:
    """Objects of one kind keyed by ``namespace/name``, in discovery order."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._items: dict[str, dict[str, Any]] = {}
        self._synced = False

    @property
    def has_synced(self) -> bool:
        return self._synced

    def replace(self, items: Iterable[dict[str, Any]]) -> None:
        """Swap in a full listing and mark the store synced."""
        self._items = {object_key(obj): obj for obj in items}
        self._synced = True

    def upsert(self, obj: dict[str, Any]) -> None:
        self._items[object_key(obj)] = obj

    def delete(self, obj: dict[str, Any]) -> None:
        self._items.pop(object_key(obj), None)

    def get(self, key: str) -> dict[str, Any] | None:
        return self._items.get(key)

    def list(self) -> list[dict[str, Any]]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)


class Lister:
    """Read-only view of a store. Refuses to answer before the first sync."""

    def __init__(self, store: Store) -> None:
        self._store = store

    @property
    def kind(self) -> str:
        return self._store.kind

    def list(self) -> list[dict[str, Any]]:
        if not self._store.has_synced:
            raise CacheNotSyncedError(self._store.kind)
        return self._store.list()


class PodLister(Lister):
    """Pod cache with lookup by workload selector."""

    def pods_for_selector(
        self, selector: Selector, *, namespace: str | None = None,
    ) -> list[dict[str, Any]]:
        # An empty selector would claim every pod in the namespace.
        if selector.empty:
            return []
        pods = []
        for pod in self.list():
            meta = pod.get('metadata') or {}
            if namespace is not None and meta.get('namespace') != namespace:
                continue
            if selector.matches(meta.get('labels')):
                pods.append(pod)
        return pods


class Informer:
    """List+watch loop for a single resource kind."""

    def __init__(
        self,
        client: ClusterAPI,
        kind: str,
        *,
        namespace: str | None = None,
        label_selector: str | None = None,
        resync_seconds: float = DEFAULT_RESYNC_SECONDS,
        watch_timeout_seconds: int = DEFAULT_WATCH_TIMEOUT_SECONDS,
        error_delay_seconds: float = DEFAULT_ERROR_DELAY_SECONDS,
    ) -> None:
        self._client = client
        self.kind = kind
        self._namespace = namespace
        self._label_selector = label_selector
        self._resync_seconds = resync_seconds
        self._watch_timeout_seconds = watch_timeout_seconds
        self._error_delay_seconds = error_delay_seconds
        self.store = Store(kind)
        self._synced = asyncio.Event()

    @property
    def has_synced(self) -> bool:
        return self.store.has_synced

    async def wait_for_sync(self, timeout: float | None = None) -> bool:
        """Wait for the first successful list. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._synced.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def relist(self) -> str | None:
        """Replace the store with a fresh listing; return its resourceVersion."""
        result = await self._client.list_objects(
            self.kind,
            namespace=self._namespace,
            label_selector=self._label_selector,
        )
        self.store.replace(result.get('items') or [])
        self._synced.set()
        INFORMER_RELISTS_TOTAL.labels(kind=self.kind).inc()
        logger.debug(
            'Listed %d %s objects',
            len(self.store),
            self.kind,
            extra={'kind': self.kind},
        )
        return (result.get('metadata') or {}).get('resourceVersion')

    def apply_event(self, event: dict[str, Any]) -> str | None:
        """Apply one watch event; return the resourceVersion it carries."""
        event_type = event.get('type')
        obj = event.get('object') or {}
        if event_type in ('ADDED', 'MODIFIED'):
            self.store.upsert(obj)
        elif event_type == 'DELETED':
            self.store.delete(obj)
        elif event_type != 'BOOKMARK':
            logger.warning('Ignoring unknown %s watch event %r', self.kind, event_type)
        return (obj.get('metadata') or {}).get('resourceVersion')

    async def watch(self, resource_version: str | None) -> str | None:
        """Consume one watch stream until the server closes it."""
        async for event in self._client.watch_objects(
            self.kind,
            namespace=self._namespace,
            label_selector=self._label_selector,
            resource_version=resource_version,
            timeout_seconds=self._watch_timeout_seconds,
        ):
            resource_version = self.apply_event(event) or resource_version
        return resource_version

    async def run(self) -> None:
        """Run until cancelled."""
        loop = asyncio.get_running_loop()
        while True:
            try:
                resource_version = await self.relist()
                resync_at = loop.time() + self._resync_seconds
                while loop.time() < resync_at:
                    resource_version = await self.watch(resource_version)
            except KubeGoneError:
                logger.info('%s watch expired, relisting', self.kind)
            except Exception as exc:
                INFORMER_ERRORS_TOTAL.labels(kind=self.kind).inc()
                logger.warning(
                    '%s cache sync failed, retrying in %.1fs: %s',
                    self.kind,
                    self._error_delay_seconds,
                    exc,
                )
                await asyncio.sleep(self._error_delay_seconds)
