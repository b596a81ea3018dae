"""Component catalog construction.

Turns the current cache contents into one component per managed object.
Discovery order is DaemonSets, then Deployments, then Nodes, each in the
order its cache lists them; the controller's stable sort keeps that order
among equal priorities.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

from ..components import (
    MANAGED_SELECTOR,
    Component,
    DaemonSetComponent,
    DeploymentComponent,
    NodeComponent,
)
from ..errors import CatalogBuildError, UpdateControllerError
from ..kube.informer import Lister, PodLister
from ..kube.labels import Selector, parse_selector


class CatalogBuilder(Protocol):
    def __call__(
        self,
        client: Any,
        *,
        daemon_sets: Lister,
        deployments: Lister,
        nodes: Lister,
        pods: PodLister,
        managed_selector: Selector,
    ) -> list[Component]: ...


def build_catalog(
    client: Any,
    *,
    daemon_sets: Lister,
    deployments: Lister,
    nodes: Lister,
    pods: PodLister,
    managed_selector: Selector | None = None,
) -> list[Component]:
    """Build every managed component or raise ``CatalogBuildError``.

    All failures are collected before raising so one bad object does not
    hide another.
    """
    selector = managed_selector or parse_selector(MANAGED_SELECTOR)
    factories: tuple[tuple[Lister, Callable[[dict[str, Any]], Component]], ...] = (
        (daemon_sets, lambda obj: DaemonSetComponent(client, obj, pods)),
        (deployments, lambda obj: DeploymentComponent(client, obj)),
        (nodes, lambda obj: NodeComponent(client, obj)),
    )

    components: list[Component] = []
    errors: list[Exception] = []

    # DaemonSet convergence reads the pod cache, so it must be usable too.
    try:
        pods.list()
    except UpdateControllerError as exc:
        errors.append(exc)

    for lister, factory in factories:
        try:
            objects = lister.list()
        except UpdateControllerError as exc:
            errors.append(exc)
            continue

        for obj in objects:
            labels = (obj.get('metadata') or {}).get('labels')
            if not selector.matches(labels):
                continue
            try:
                components.append(factory(obj))
            except (ValueError, KeyError) as exc:
                errors.append(exc)

    if errors:
        raise CatalogBuildError(errors)
    return components
