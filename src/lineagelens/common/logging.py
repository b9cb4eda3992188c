"""Structured logging for the lineage engine.

Everything logs through structlog. ``setup_logging`` is called once by
the process that owns the engine; until then structlog's defaults apply,
which is what the test suite runs with.

Output is JSON lines in production and a coloured console with rich
tracebacks in development.
"""

import logging
import sys
from enum import Enum
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from lineagelens.common.config import Settings, get_settings

# Third-party loggers that only add noise at INFO
QUIET_LOGGERS = ("asyncio",)


def service_context(settings: Settings) -> Processor:
    """Build a processor stamping every entry with service identity."""
    context = {
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }

    def add_service_context(
        logger: WrappedLogger,
        method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        for key, value in context.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_service_context


def flatten_enums(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Log enum members (change types, directions, levels) by value."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def _renderers(fmt: str) -> list[Processor]:
    if fmt == "json":
        return [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [
        structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.rich_traceback,
        ),
    ]


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        settings: Application settings. Uses global settings if not provided.
    """
    if settings is None:
        settings = get_settings()
    log_settings = settings.logging

    processors: list[Processor] = []
    if log_settings.include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    processors += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        flatten_enums,
    ]
    if log_settings.include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ))
    processors.append(service_context(settings))

    structlog.configure(
        processors=processors + _renderers(log_settings.format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, log_settings.level)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger, optionally with bound context.

    Example:
        logger = get_logger(__name__, node_id="source_ems_energy")
        logger.info("Tracing lineage", depth=5)
    """
    logger = structlog.get_logger(name)
    return logger.bind(**initial_context) if initial_context else logger


def bind_context(**context: Any) -> None:
    """Bind context to every log entry of the current task.

    Backed by contextvars, so each scheduler loop keeps its own context.
    """
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
