"""structlog setup for the gateway process.

Agent code logs through ``structlog.get_logger()``. Records from the stdlib
loggers the gateway depends on (uvicorn, httpx, sqlalchemy) are rendered by the
same processor chain so one process emits one log format.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any

import structlog

REDACTED = "***"
SECRET_KEY_MARKERS = ("api_key", "apikey", "password", "secret", "authorization", "access_token")

# Third-party loggers that are chatty at INFO.
QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask values logged under credential-looking keys."""
    for key in event_dict:
        lowered = key.lower()
        if any(marker in lowered for marker in SECRET_KEY_MARKERS) and event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def drop_none_values(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    return {k: v for k, v in event_dict.items() if v is not None}


def setup_logging(*, json_output: bool = True, log_level: str = "INFO") -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        json_output: Render JSON lines when True, colored console output otherwise.
        log_level: Minimum level for both structlog and stdlib records.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    shared: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
        drop_none_values,
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer(ensure_ascii=False)
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _route_stdlib(level, shared, renderer)


def _route_stdlib(
    level: int,
    shared: list[structlog.types.Processor],
    renderer: structlog.types.Processor,
) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[*shared, structlog.stdlib.add_logger_name],
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root = logging.getLogger()
    # Repeated setup replaces the previous structlog handler only.
    root.handlers = [
        h for h in root.handlers if not isinstance(h.formatter, structlog.stdlib.ProcessorFormatter)
    ]
    root.addHandler(handler)
    root.setLevel(level)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, quiet_level))
    # uvicorn installs its own handlers; let its records reach the root handler instead.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True
