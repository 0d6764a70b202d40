from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

from zendesk_archive_gateway.config.redact import redact_settings_dict

_LOG_FORMATS = frozenset({"json", "human"})

# Loggers that are rerouted through the root handler, and loggers kept at WARNING.
_REROUTED = ("uvicorn", "uvicorn.error", "uvicorn.access")
# httpx logs every request URL at INFO; attachment URLs carry access tokens.
_QUIETED = ("httpx", "httpcore")


def _scrub_event_dict(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    return redact_settings_dict(event_dict)


def _drop_uvicorn_color_message(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.pop("color_message", None)
    return event_dict


def _normalize_format(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    return normalized if normalized in _LOG_FORMATS else None


def resolve_log_format(*, log_format: str | None, json_logs: bool) -> str:
    """Explicit setting, then LOG_FORMAT, then the json_logs flag."""
    return (
        _normalize_format(log_format)
        or _normalize_format(os.environ.get("LOG_FORMAT"))
        or ("json" if json_logs else "human")
    )


def resolve_log_level(log_level: str) -> str:
    raw = (os.environ.get("LOG_LEVEL") or "").strip()
    return (raw or log_level).upper()


def configure_logging(
    *,
    log_level: str = "INFO",
    json_logs: bool = False,
    log_format: str | None = None,
) -> None:
    """
    structlog over stdlib logging; every event passes through the secret scrubber.

    Request-scoped fields (request_id, brand_id, ticket_id) come from structlog
    contextvars bound by the middleware and the request handlers.
    """
    resolved_format = resolve_log_format(log_format=log_format, json_logs=json_logs)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _drop_uvicorn_color_message,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _scrub_event_dict,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if resolved_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(processor=renderer, foreign_pre_chain=shared_processors))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(resolve_log_level(log_level))

    for name in _REROUTED:
        logger = logging.getLogger(name)
        logger.handlers = []
        logger.propagate = True
    for name in _QUIETED:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *shared_processors,
            ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
