"""Request middleware for the update controller app.

``RequestContextMiddleware`` accepts or generates an ``X-Request-ID``,
exposes it to log records through ``request_id_ctx`` while the request is
handled, echoes it on the response, and logs the completed request.
Kubelet probes and Prometheus scrapes hit ``/health`` and ``/metrics``
every few seconds, so those are logged at DEBUG only.
"""

from __future__ import annotations

import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import request_id_ctx

logger = logging.getLogger(__name__)

# 8-128 chars of alphanumerics and dashes; anything else is replaced.
_VALID_REQUEST_ID = re.compile(r"^[a-zA-Z0-9\-]{8,128}$")

QUIET_PATHS = frozenset({"/health", "/metrics"})


def resolve_request_id(incoming: str | None) -> str:
    if incoming and _VALID_REQUEST_ID.match(incoming):
        return incoming
    return str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        rid = resolve_request_id(request.headers.get("x-request-id"))
        token = request_id_ctx.set(rid)
        start = time.perf_counter()
        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000
            level = logging.DEBUG if request.url.path in QUIET_PATHS else logging.INFO
            logger.log(
                level,
                "%s %s -> %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                },
            )
        finally:
            request_id_ctx.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
