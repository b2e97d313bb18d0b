"""
structlog setup for the API process.

Every event carries the request context bound by the HTTP middleware
(request_id, actor, path) and never carries credential values.
"""

import logging
import sys
from typing import Any
from uuid import uuid4

import structlog

# Client libraries that log every HTTP round trip at INFO
CHATTY_LOGGERS = ("httpx", "httpcore", "urllib3", "minio", "pusher")

SECRET_KEYS = frozenset({"access_token", "api_key", "secret", "password", "secret_key", "authorization"})
REDACTED = "***"


def redact_secrets(logger: Any, method_name: str, event_dict: dict) -> dict:
    for key in SECRET_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """
    Route stdlib and structlog output through one stdout handler.

    Args:
        log_level: Level name for the application loggers.
        json_output: JSON lines for log shipping; otherwise the dev console renderer.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_secrets,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_request(path: str, actor: str | None = None, request_id: str | None = None) -> str:
    """Start a fresh log context for one HTTP request; returns its request id."""
    request_id = request_id or uuid4().hex[:12]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, path=path, actor=actor)
    return request_id


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
