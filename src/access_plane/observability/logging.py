"""Structured logging configuration for the access plane.

Configures structlog once per process and bridges stdlib logging through
``ProcessorFormatter``: modules keep using ``logging.getLogger(__name__)``
and their records come out as JSON lines tagged with the service,
environment and current request id.

Invite and share tokens are bearer credentials. Any structured field whose
name marks it as one is cut down to a short prefix before rendering.

Usage::

    from access_plane.observability.logging import configure_logging

    configure_logging(level="INFO", json_output=True, environment="staging")
"""

from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar

import structlog

SERVICE_NAME = "access-plane"

# Request-scoped correlation id, set by RequestIdMiddleware.
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# Event fields rendered as an 8-character prefix.
SECRET_FIELDS = frozenset({
    "token",
    "invite_token",
    "share_token",
    "authorization",
})
_SECRET_PREFIX = 8

_configured = False


def _add_request_id(logger, method_name: str, event_dict: dict) -> dict:
    rid = request_id_ctx.get()
    if rid is not None:
        event_dict["request_id"] = rid
    return event_dict


def _mask_secret_fields(logger, method_name: str, event_dict: dict) -> dict:
    for key in SECRET_FIELDS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and len(value) >= _SECRET_PREFIX:
            event_dict[key] = f"{value[:_SECRET_PREFIX]}..."
        else:
            event_dict[key] = "<redacted>"
    return event_dict


def _service_tagger(environment: str):
    def _add_service(logger, method_name: str, event_dict: dict) -> dict:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", environment)
        return event_dict
    return _add_service


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
    environment: str | None = None,
    force: bool = False,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Log level name. Defaults to LOG_LEVEL or INFO.
        json_output: JSON lines when True, console rendering when False.
            Defaults to LOG_FORMAT == "json".
        environment: Deployment environment stamped on every line.
            Defaults to ENVIRONMENT or "local".
        force: Reconfigure even if already configured (tests).
    """
    global _configured
    if _configured and not force:
        return
    _configured = True

    level = level or os.environ.get("LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "json") == "json"
    environment = environment or os.environ.get("ENVIRONMENT", "local")

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_request_id,
        _service_tagger(environment),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _mask_secret_fields,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer(sort_keys=True)
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # PostgREST request lines carry filter values such as token=eq.<token>.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
