"""Update controller FastAPI application factory.

create_app() wires the cluster API client, the update controller, and the
periodic driver into an ASGI app. The lifespan starts the cache sync loops
(and the driver when enabled) and stops them on shutdown.

Routes:
  GET  /health              → liveness plus cache sync state
  GET  /api/v1/components   → catalog snapshot, optionally judged against ?version=
  POST /api/v1/update       → run exactly one update step toward a version
  GET  /metrics             → Prometheus exposition

Usage:
    # Local development (in-memory cluster API)
    app = create_app(UpdaterSettings())

    # In cluster
    app = create_app(UpdaterSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, client=fake_client, controller=controller)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .cluster import UpdateController, UpdateDriver
from .components import Version
from .errors import (
    CatalogBuildError,
    ComponentUpdateError,
    InvalidVersionError,
    NoComponentsError,
)
from .kube.client import KubeClient
from .observability.metrics import metrics_text
from .observability.middleware import RequestContextMiddleware
from .protocols import ClusterAPI
from .settings import UpdaterSettings

logger = logging.getLogger(__name__)


class UpdateRequest(BaseModel):
    version: str = Field(min_length=1, description="Target semantic version, e.g. 1.3.0")


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"code": code, "message": message})


def _parse_version(raw: str) -> Version | JSONResponse:
    try:
        return Version.parse(raw)
    except InvalidVersionError as exc:
        return _error(400, "INVALID_VERSION", str(exc))


def _build_router() -> APIRouter:
    router = APIRouter(prefix="/api/v1", tags=["update-controller"])

    @router.get("/components")
    async def list_components(request: Request, version: str | None = Query(default=None)):
        controller: UpdateController = request.app.state.controller
        target = None
        if version is not None:
            target = _parse_version(version)
            if isinstance(target, JSONResponse):
                return target
        try:
            statuses = controller.status(target)
        except CatalogBuildError as exc:
            return _error(503, "CATALOG_UNAVAILABLE", str(exc))
        return {
            "components": [
                {
                    "name": s.name,
                    "kind": s.kind,
                    "priority": s.priority,
                    "version": s.version,
                    "converged": s.converged,
                    "error": s.error,
                }
                for s in statuses
            ],
        }

    @router.post("/update")
    async def update(request: Request, body: UpdateRequest):
        controller: UpdateController = request.app.state.controller
        target = _parse_version(body.version)
        if isinstance(target, JSONResponse):
            return target
        try:
            updated = await controller.update_to_version(target)
        except InvalidVersionError as exc:
            return _error(422, "INVALID_COMPONENT_VERSION", str(exc))
        except NoComponentsError as exc:
            return _error(409, "NO_COMPONENTS", str(exc))
        except CatalogBuildError as exc:
            return _error(503, "CATALOG_UNAVAILABLE", str(exc))
        except ComponentUpdateError as exc:
            return JSONResponse(
                status_code=502,
                content={
                    "code": "COMPONENT_UPDATE_FAILED",
                    "message": str(exc),
                    "component": exc.name,
                    "kind": exc.kind,
                },
            )
        return {"target": str(target), "updated": updated}

    return router


def create_app(
    settings: UpdaterSettings | None = None,
    *,
    client: ClusterAPI | None = None,
    controller: UpdateController | None = None,
) -> FastAPI:
    """Create a configured update-controller FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        client: Cluster API override. When None, local mode uses the
            in-memory cluster API and other environments use ``KubeClient``.
        controller: Controller override; built from ``client`` when None.

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = UpdaterSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Update controller settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    if client is None:
        if settings.is_local:
            from .inmemory import InMemoryKubeClient

            client = InMemoryKubeClient()
        else:
            client = KubeClient.from_settings(settings)

    if controller is None:
        controller = UpdateController(
            client,
            namespace=settings.namespace,
            managed_selector=settings.managed_selector,
            resync_seconds=settings.resync_seconds,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Update controller startup (environment=%s)", settings.environment)
        controller.start()
        driver_task = None
        if settings.run_driver:
            driver = UpdateDriver.from_settings(controller, client, settings)
            driver_task = asyncio.create_task(driver.run_forever(), name="update-driver")
        try:
            yield
        finally:
            if driver_task is not None:
                driver_task.cancel()
                await asyncio.gather(driver_task, return_exceptions=True)
            await controller.stop()
            if isinstance(client, KubeClient):
                await client.aclose()
            logger.info("Update controller shutdown")

    app = FastAPI(
        title="Cluster Update Controller",
        description="Rolls managed cluster components to a target version one step at a time",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.client = client
    app.state.controller = controller

    app.add_middleware(RequestContextMiddleware)

    @app.get("/health")
    async def health():
        return {"status": "ok", "caches_synced": controller.has_synced}

    @app.get("/metrics")
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(_build_router())
    return app
