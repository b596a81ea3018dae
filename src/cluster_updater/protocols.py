"""Cluster API protocol for dependency injection.

``KubeClient`` talks to a real API server; ``InMemoryKubeClient`` serves
local runs and tests. Informers, components, and the driver accept
anything matching this protocol.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Mapping, Protocol, runtime_checkable


@runtime_checkable
class ClusterAPI(Protocol):
    """List, watch and patch the kinds the update controller manages."""

    async def list_objects(
        self,
        kind: str,
        *,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> dict[str, Any]: ...

    def watch_objects(
        self,
        kind: str,
        *,
        namespace: str | None = None,
        label_selector: str | None = None,
        resource_version: str | None = None,
        timeout_seconds: int = 300,
    ) -> AsyncIterator[dict[str, Any]]: ...

    async def patch_node_annotations(
        self, name: str, annotations: Mapping[str, str],
    ) -> dict[str, Any]: ...

    async def patch_container_image(
        self,
        kind: str,
        name: str,
        *,
        namespace: str,
        container: str,
        image: str,
    ) -> dict[str, Any]: ...

    async def get_config_map(self, name: str, *, namespace: str) -> dict[str, Any]: ...
