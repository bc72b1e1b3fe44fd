from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


_CONFIGURED = False

# The Functions host captures the worker's stdout, uvicorn included.
_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"LOGLEVEL must be a valid log level, got {level!r}")
    return resolved


def _shared_processors() -> list[Any]:
    # Applied to structlog events and to plain stdlib records alike.
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _json_handler(shared: list[Any]) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=shared,
        )
    )
    return handler


def configure_logging(level: int | str = logging.INFO) -> None:
    """Send structlog events and stdlib records to stdout as one JSON object per line.

    Accepts a level number or a name such as ``"debug"``; unknown names raise ValueError.
    Only the first call has an effect.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    numeric_level = _resolve_level(level)
    shared = _shared_processors()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = _json_handler(shared)
    for name in (None, *_UVICORN_LOGGERS):
        target = logging.getLogger(name)
        target.handlers = [handler]
        target.setLevel(numeric_level)
        if name is not None:
            target.propagate = False

    _CONFIGURED = True
