"""Structured logging for the update controller process.

Every module logs through ``logging.getLogger(__name__)`` with %-style
messages. ``configure_logging()`` routes those records through structlog so
each line is rendered as one JSON object (or a console line in local runs)
carrying:

- ``request_id`` while an HTTP request is being handled,
- ``target`` while an update step is running (see ``update_step_context``),
- any ``extra=`` fields, e.g. ``component`` and ``kind``.

Usage::

    from cluster_updater.observability.logging import configure_logging

    configure_logging(level="DEBUG")  # once, before the app starts
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

import structlog

# Set by RequestContextMiddleware for the duration of one request.
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}

_configured = False


def _add_request_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    rid = request_id_ctx.get()
    if rid is not None:
        event_dict.setdefault("request_id", rid)
    return event_dict


def _drop_color_message(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    # uvicorn repeats every message with ANSI codes under this extra key.
    event_dict.pop("color_message", None)
    return event_dict


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        _add_request_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        _drop_color_message,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
    force: bool = False,
) -> None:
    """Install the structlog formatter on the root logger.

    ``level`` defaults to ``LOG_LEVEL`` (INFO). Output is JSON unless
    ``json_output`` is False or ``LOG_FORMAT=console``. Repeated calls are
    ignored unless ``force`` is set.
    """
    global _configured
    if _configured and not force:
        return
    _configured = True

    level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "json") != "console"

    processors = _shared_processors()
    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level, logging.INFO))

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


@contextmanager
def update_step_context(target: str) -> Iterator[None]:
    """Tag every record logged inside one update step with its target."""
    with structlog.contextvars.bound_contextvars(target=target):
        yield
