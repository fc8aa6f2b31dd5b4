"""Retry handlers and the process-name → handler registry.

A retry handler re-runs the operation behind one retry log record and
reports the outcome as a new ``FailureNotification`` carrying the same
``record_id``. The dispatch gateway only ever calls ``invoke_retry``.

ARCHITECTURE
────────────
::

    HandlerRegistry
      ├── .register(process_name, handler)  ─ store handler (instance or class)
      ├── .get(process_name)                ─ lookup, HandlerNotFoundError on miss
      ├── .list_handlers()                  ─ registered process names
      └── .has(process_name)                ─ existence check

    RetryAwareHandler (ABC)
      ├── invoke_retry(record)              ─ implemented by the business module
      ├── report_success(record, ...)       ─ Success notification → sink
      └── report_failure(record, ...)       ─ Failure notification → sink

    @retry_handler("Billing")               ─ decorator, default registry
    get_default_registry()                  ─ module-level singleton
    reset_default_registry()                ─ clear for testing

Handler classes are instantiated on first lookup. Subclasses of
``RetryAwareHandler`` receive the registry's notification sink, so the
outcome they report flows back into the ledger.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Any, ClassVar, Protocol, runtime_checkable

from retryline.core.errors import HandlerNotFoundError, InvalidConfigError
from retryline.core.logging import get_logger

from .models import FailureNotification, NotificationStatus, RetryLogRecord

logger = get_logger(__name__)

NotificationSink = Callable[[Sequence[FailureNotification]], Any]


@runtime_checkable
class RetryHandler(Protocol):
    """Anything that can re-run the operation behind a retry log record."""

    def invoke_retry(self, record: RetryLogRecord) -> None: ...


class RetryAwareHandler(ABC):
    """Base class for handlers that report their own outcome.

    Example:
        >>> class ChargeRetry(RetryAwareHandler):
        ...     def invoke_retry(self, record):
        ...         try:
        ...             charge(PayloadReader.request(record).require("invoice_id"))
        ...         except GatewayError as e:
        ...             self.report_failure(record, error_message=str(e))
        ...         else:
        ...             self.report_success(record)
    """

    description: ClassVar[str | None] = None

    def __init__(self, sink: NotificationSink | None = None):
        self._sink = sink

    @property
    def sink(self) -> NotificationSink | None:
        return self._sink

    def bind_sink(self, sink: NotificationSink) -> None:
        self._sink = sink

    @abstractmethod
    def invoke_retry(self, record: RetryLogRecord) -> None:
        """Re-run the operation for *record*."""

    def report_success(
        self,
        record: RetryLogRecord,
        *,
        response_payload: str | None = None,
        processed: bool = True,
    ) -> FailureNotification:
        """Report that the retried operation succeeded (ends the chain)."""
        return self._report(
            record,
            NotificationStatus.SUCCESS,
            processed=processed,
            response_payload=response_payload,
            error_message=None,
        )

    def report_failure(
        self,
        record: RetryLogRecord,
        *,
        error_message: str,
        response_payload: str | None = None,
        processed: bool = False,
    ) -> FailureNotification:
        """Report that the retried operation failed again.

        ``processed=True`` gives up on the chain regardless of the policy.
        """
        return self._report(
            record,
            NotificationStatus.FAILURE,
            processed=processed,
            response_payload=response_payload,
            error_message=error_message,
        )

    def _report(
        self,
        record: RetryLogRecord,
        status: NotificationStatus,
        *,
        processed: bool,
        response_payload: str | None,
        error_message: str | None,
    ) -> FailureNotification:
        notification = FailureNotification.create(
            record.process_name,
            status,
            record_id=record.id,
            method_name=record.method_name,
            processed=processed,
            request_payload=record.request_payload,
            response_payload=response_payload,
            error_message=error_message,
        )
        if self._sink is None:
            logger.warning("retry_outcome_dropped", record_id=record.id, reason="no notification sink bound")
        else:
            self._sink([notification])
        return notification


class HandlerRegistry:
    """Injectable registry of retry handlers keyed by process name.

    Example:
        >>> registry = HandlerRegistry()
        >>>
        >>> @retry_handler("Billing", registry=registry)
        ... class BillingRetry(RetryAwareHandler):
        ...     def invoke_retry(self, record):
        ...         ...
        >>>
        >>> registry.get("Billing")
        <BillingRetry ...>
    """

    def __init__(self, sink: NotificationSink | None = None):
        self._handlers: dict[str, RetryHandler] = {}
        self._factories: dict[str, type] = {}
        self._metadata: dict[str, dict[str, Any]] = {}
        self._sink = sink
        self._lock = threading.RLock()

    def bind_sink(self, sink: NotificationSink) -> None:
        """Set the sink handed to ``RetryAwareHandler`` instances.

        Already-created handlers without a sink are bound too.
        """
        with self._lock:
            self._sink = sink
            for handler in self._handlers.values():
                if isinstance(handler, RetryAwareHandler) and handler.sink is None:
                    handler.bind_sink(sink)

    def register(
        self,
        process_name: str,
        handler: RetryHandler | type,
        description: str | None = None,
    ) -> None:
        """Register a handler instance, or a handler class to build lazily.

        Raises:
            InvalidConfigError: blank name or object without ``invoke_retry``
        """
        if not process_name or not process_name.strip():
            raise InvalidConfigError("process_name", process_name, "Handler process_name must not be blank")
        if not callable(getattr(handler, "invoke_retry", None)):
            raise InvalidConfigError(
                "handler", handler, f"Retry handler for {process_name!r} must define invoke_retry(record)"
            )

        with self._lock:
            if process_name in self._handlers or process_name in self._factories:
                logger.warning("retry_handler_replaced", process_name=process_name)
            self._handlers.pop(process_name, None)
            self._factories.pop(process_name, None)
            if isinstance(handler, type):
                self._factories[process_name] = handler
            else:
                if isinstance(handler, RetryAwareHandler) and handler.sink is None and self._sink is not None:
                    handler.bind_sink(self._sink)
                self._handlers[process_name] = handler
            self._metadata[process_name] = {
                "process_name": process_name,
                "handler": handler.__name__ if isinstance(handler, type) else type(handler).__name__,
                "description": description or getattr(handler, "description", None) or handler.__doc__,
            }

    def get(self, process_name: str) -> RetryHandler:
        """Get the handler for *process_name*.

        Raises:
            HandlerNotFoundError: nothing registered under that name
        """
        with self._lock:
            handler = self._handlers.get(process_name)
            if handler is not None:
                return handler
            factory = self._factories.get(process_name)
            if factory is None:
                raise HandlerNotFoundError(process_name, self.list_handlers())
            if issubclass(factory, RetryAwareHandler):
                handler = factory(sink=self._sink)
            else:
                handler = factory()
            self._handlers[process_name] = handler
            del self._factories[process_name]
            return handler

    def has(self, process_name: str) -> bool:
        """Check if handler exists."""
        return process_name in self._handlers or process_name in self._factories

    def get_metadata(self, process_name: str) -> dict[str, Any] | None:
        return self._metadata.get(process_name)

    def list_handlers(self) -> list[str]:
        """Registered process names, sorted."""
        return sorted(set(self._handlers) | set(self._factories))

    def list_with_metadata(self) -> list[dict[str, Any]]:
        """Handlers with their metadata (for the CLI)."""
        return [self._metadata[name].copy() for name in sorted(self._metadata)]

    def unregister(self, process_name: str) -> bool:
        """Unregister a handler. Returns True if one was removed."""
        with self._lock:
            removed = self._handlers.pop(process_name, None) or self._factories.pop(process_name, None)
            self._metadata.pop(process_name, None)
            return removed is not None

    def clear(self) -> None:
        """Clear all handlers (for testing)."""
        with self._lock:
            self._handlers.clear()
            self._factories.clear()
            self._metadata.clear()

    def __len__(self) -> int:
        return len(self.list_handlers())


# === GLOBAL DEFAULT REGISTRY ===

_default_registry: HandlerRegistry | None = None


def get_default_registry() -> HandlerRegistry:
    """Get the global default registry.

    Creates it lazily on first access.
    """
    global _default_registry
    if _default_registry is None:
        _default_registry = HandlerRegistry()
    return _default_registry


def reset_default_registry() -> None:
    """Reset the global registry (for testing)."""
    global _default_registry
    _default_registry = None


# === DECORATOR API ===


def retry_handler(
    process_name: str,
    registry: HandlerRegistry | None = None,
    description: str | None = None,
):
    """Class decorator registering a retry handler under *process_name*.

    Example:
        >>> @retry_handler("Billing")
        ... class BillingRetry(RetryAwareHandler):
        ...     def invoke_retry(self, record):
        ...         ...
    """

    def decorator(cls: type) -> type:
        target = registry if registry is not None else get_default_registry()
        target.register(process_name, cls, description=description or cls.__doc__)
        return cls

    return decorator


__all__ = [
    "HandlerRegistry",
    "NotificationSink",
    "RetryAwareHandler",
    "RetryHandler",
    "get_default_registry",
    "reset_default_registry",
    "retry_handler",
]
