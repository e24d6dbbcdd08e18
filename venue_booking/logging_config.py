"""
structlog setup for the booking engine.

Every event carries `service="venue_booking"` so the engine's lines can be
picked out of a shared log stream, and any request id bound by
RequestIDMiddleware.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Callable, MutableMapping

import structlog

from venue_booking.config import DEBUG, LOG_LEVEL

Processor = Callable[[Any, str, MutableMapping[str, Any]], Any]

SERVICE_NAME = "venue_booking"

# Libraries whose INFO output drowns the engine's own events
_QUIET_LOGGERS = ("urllib3", "requests", "sqlalchemy.engine", "uvicorn.access")


def _add_service(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _renderer() -> Processor:
    if DEBUG:
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def setup_logging() -> None:
    """
    Configure stdlib logging and structlog once per process.

    LOG_LEVEL=DEBUG renders colored console lines; any other level renders
    one JSON object per event, with tracebacks flattened into `exception`.
    """
    logging.basicConfig(
        format="[%(asctime)s] %(levelname)s in %(name)s: %(message)s",
        stream=sys.stdout,
        level=LOG_LEVEL,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_service,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if not DEBUG:
        processors.append(structlog.processors.format_exc_info)
    processors.append(_renderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(LOG_LEVEL)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
