"""Logging, metrics, and request middleware for the update controller."""

from .logging import configure_logging, request_id_ctx, update_step_context
from .metrics import metrics_text
from .middleware import RequestContextMiddleware

__all__ = [
    "RequestContextMiddleware",
    "configure_logging",
    "metrics_text",
    "request_id_ctx",
    "update_step_context",
]
