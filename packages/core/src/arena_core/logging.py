"""
Structured logging for the arena packages, built on structlog.

``configure_logging`` routes both structlog and stdlib records through one
handler, rendered as JSON or as colored console output. While the
supervisor processes a task it sets the task id as correlation id, and
every record emitted inside that task carries it.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import EventDict, Processor

_correlation_id: ContextVar[str | None] = ContextVar("arena_correlation_id", default=None)

# Loggers that are noisy at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "anthropic", "openai", "asyncio")


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation id of the current context; None clears it."""
    _correlation_id.set(correlation_id)


def _inject_correlation_id(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    correlation_id = _correlation_id.get()
    if correlation_id and "correlation_id" not in event_dict:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "agent-arena",
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "json" or "console"
        service_name: Bound to every record as ``service``
    """
    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _inject_correlation_id,
    ]
    renderer = _renderer(log_format)

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=pre_chain,
    ))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
