"""Cluster update controller.

``UpdateController.update_to_version`` moves the cluster one step toward a
target version and returns:

  1. build the component catalog from the caches
  2. find the highest version any component currently runs
  3. order by priority: ascending when the target is at or above that
     version (upgrade), descending otherwise (rollback)
  4. ask each component in turn to update; stop after the first one that
     issues a write

Nothing is remembered between calls. Progress lives entirely in cluster
state, so the caller simply invokes this again until it stops writing.
Concurrent invocations are not guarded against; use a single driver.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Sequence

from ..components import MANAGED_SELECTOR, Component, Version
from ..errors import (
    ComponentUpdateError,
    InvalidVersionError,
    NoComponentsError,
    UpdateControllerError,
)
from ..kube.informer import DEFAULT_RESYNC_SECONDS, Informer, Lister, PodLister
from ..kube.labels import parse_selector
from ..observability.logging import update_step_context
from ..observability.metrics import (
    CLUSTER_VERSION,
    COMPONENT_UPDATES_TOTAL,
    MANAGED_COMPONENTS,
    UPDATE_STEP_DURATION_SECONDS,
    UPDATE_STEPS_TOTAL,
)
from ..protocols import ClusterAPI
from .catalog import CatalogBuilder, build_catalog

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = 'kube-system'


@dataclass(frozen=True, slots=True)
class ComponentStatus:
    """Read-only view of one component for status reporting."""

    name: str
    kind: str
    priority: int
    version: str | None
    converged: bool | None = None
    error: str | None = None


def highest_cluster_version(components: Sequence[Component]) -> Version:
    """Highest version across ``components``.

    Raises ``NoComponentsError`` for an empty catalog and propagates the
    first component version error.
    """
    highest: Version | None = None
    for component in components:
        version = component.version()
        if highest is None or version > highest:
            highest = version
    if highest is None:
        raise NoComponentsError()
    return highest


def sort_components_by_priority(
    highest: Version,
    target: Version,
    components: Sequence[Component],
) -> list[Component]:
    """Order components for a move from ``highest`` to ``target``.

    Moving to or above the highest running version is an upgrade and runs
    in ascending priority; anything lower is a rollback and runs
    descending. Ties keep catalog order.
    """
    if target >= highest:
        logger.info('Sorting components by ascending priority')
        return sorted(components, key=lambda c: c.priority)
    logger.info('Sorting components by descending priority')
    return sorted(components, key=lambda c: c.priority, reverse=True)


class UpdateController:
    """Safely updates every managed component of a cluster.

    Owns four caches (nodes, DaemonSets, Deployments, and the pods in the
    controller namespace). ``start()`` launches their sync loops, which then
    run for the life of the process.
    """

    def __init__(
        self,
        client: ClusterAPI,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        managed_selector: str = MANAGED_SELECTOR,
        resync_seconds: float = DEFAULT_RESYNC_SECONDS,
        catalog_builder: CatalogBuilder = build_catalog,
    ) -> None:
        self.client = client
        self.namespace = namespace
        self._managed_selector = parse_selector(managed_selector)
        self._catalog_builder = catalog_builder

        managed = str(self._managed_selector)
        self._informers = {
            'Node': Informer(
                client, 'Node', label_selector=managed, resync_seconds=resync_seconds,
            ),
            'DaemonSet': Informer(
                client, 'DaemonSet', namespace=namespace,
                label_selector=managed, resync_seconds=resync_seconds,
            ),
            'Deployment': Informer(
                client, 'Deployment', namespace=namespace,
                label_selector=managed, resync_seconds=resync_seconds,
            ),
            'Pod': Informer(
                client, 'Pod', namespace=namespace, resync_seconds=resync_seconds,
            ),
        }
        self.nodes = Lister(self._informers['Node'].store)
        self.daemon_sets = Lister(self._informers['DaemonSet'].store)
        self.deployments = Lister(self._informers['Deployment'].store)
        self.pods = PodLister(self._informers['Pod'].store)
        self._tasks: list[asyncio.Task[None]] = []

    # ── Cache lifecycle ────────────────────────────────────────────

    def start(self) -> None:
        """Launch the cache sync loops. Must be called from a running loop."""
        if self._tasks:
            return
        for kind, informer in self._informers.items():
            self._tasks.append(
                asyncio.create_task(informer.run(), name=f'informer-{kind}')
            )
        logger.info('Started %d cache sync loops', len(self._tasks))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    @property
    def has_synced(self) -> bool:
        return all(informer.has_synced for informer in self._informers.values())

    async def wait_for_sync(self, timeout: float | None = None) -> bool:
        results = await asyncio.gather(
            *(informer.wait_for_sync(timeout) for informer in self._informers.values())
        )
        return all(results)

    # ── Update loop ────────────────────────────────────────────────

    def components(self) -> list[Component]:
        """Build a fresh catalog from the caches."""
        return self._catalog_builder(
            self.client,
            daemon_sets=self.daemon_sets,
            deployments=self.deployments,
            nodes=self.nodes,
            pods=self.pods,
            managed_selector=self._managed_selector,
        )

    async def update_to_version(self, target: Version) -> bool:
        """Take at most one step toward ``target``.

        Returns True after the first component write, or False after finding
        every component already at ``target``.
        """
        started = time.monotonic()
        try:
            with update_step_context(str(target)):
                updated = await self._update_to_version(target)
        except UpdateControllerError:
            UPDATE_STEPS_TOTAL.labels(outcome='error').inc()
            raise
        finally:
            UPDATE_STEP_DURATION_SECONDS.observe(time.monotonic() - started)
        UPDATE_STEPS_TOTAL.labels(outcome='updated' if updated else 'converged').inc()
        return updated

    async def _update_to_version(self, target: Version) -> bool:
        components = self.components()
        MANAGED_COMPONENTS.set(len(components))

        highest = highest_cluster_version(components)
        CLUSTER_VERSION.info({'highest': str(highest), 'target': str(target)})

        for component in sort_components_by_priority(highest, target, components):
            logger.info('Begin update of component: %s', component.name)
            try:
                updated = await component.update_to_version(target)
            except Exception as exc:
                err = ComponentUpdateError(component.name, component.kind, exc)
                logger.error(str(err))
                raise err from exc

            # Stop after one write and re-read everything next time, so
            # out-of-band changes during a rollout are always noticed.
            if updated:
                COMPONENT_UPDATES_TOTAL.labels(kind=component.kind).inc()
                logger.info('Finished update of component: %s', component.name)
                return True
            logger.info('Component %s already at %s, moving on', component.name, target)

        logger.info('All %d components are at %s', len(components), target)
        return False

    def status(self, target: Version | None = None) -> list[ComponentStatus]:
        """Describe the current catalog without changing anything."""
        result = []
        for component in self.components():
            try:
                version = component.version()
            except InvalidVersionError as exc:
                result.append(ComponentStatus(
                    name=component.name,
                    kind=component.kind,
                    priority=component.priority,
                    version=None,
                    error=str(exc),
                ))
                continue
            result.append(ComponentStatus(
                name=component.name,
                kind=component.kind,
                priority=component.priority,
                version=str(version),
                converged=component.converged(target) if target is not None else None,
            ))
        return result
