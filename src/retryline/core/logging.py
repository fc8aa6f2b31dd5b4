"""
Structured logging for retryline.

Configures structlog once per process and hands out loggers. Every module
logs event-style messages with keyword context::

    logger = get_logger(__name__)
    logger.info("batch_reconciled", created=3, updated=9)

Output (JSON format)::

    {
      "@timestamp": "2026-01-12T10:00:00Z",
      "log.level": "info",
      "service.name": "retryline",
      "event": "batch_reconciled",
      "created": 3,
      "updated": 9
    }

Features:
    - Structured JSON output for log aggregation (ECS-compatible keys)
    - Colored console output for development
    - Context propagation via contextvars (``bind_context``, ``LogContext``)
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Store service name for metadata
_SERVICE_NAME = "retryline"


def _add_service_metadata(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _elasticsearch_compatible(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Make field names Elasticsearch/ECS compatible."""
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    return event_dict


class _NamedPrintLogger(structlog.PrintLogger):
    """PrintLogger carrying the name passed to ``get_logger`` (for ``add_logger_name``)."""

    def __init__(self, file: Any = None, name: str | None = None):
        super().__init__(file)
        self.name = name or _SERVICE_NAME


def _print_logger_factory(to_stderr: bool) -> Any:
    """Build loggers writing to stdout, or to stderr looked up per logger."""

    def factory(*args: Any) -> _NamedPrintLogger:
        name = args[0] if args else None
        return _NamedPrintLogger(sys.stderr if to_stderr else sys.stdout, name)

    return factory


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "retryline",
    add_timestamp: bool = True,
    to_stderr: bool = False,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
        to_stderr: Write to stderr (CLI use). The stream is looked up per
            call, so loggers are not cached.
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        shared_processors.append(_elasticsearch_compatible)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        context_class=dict,
        logger_factory=_print_logger_factory(to_stderr),
        cache_logger_on_first_use=not to_stderr,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs.

    Example:
        bind_context(process_name="Billing", record_id="abc123")
        logger.info("dispatch_started")  # Includes process_name and record_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(record_id="abc123"):
            logger.info("dispatch_started")
        # Context cleared here
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
