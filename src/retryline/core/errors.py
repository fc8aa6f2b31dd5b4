"""
Structured error types for retryline.

Every error raised by the retry core carries a category, a retryable flag,
structured context and an optional chained cause, so log lines and alerts
can be routed without parsing messages.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      RetrylineError                          │
        │  (category, retryable, context, cause)                       │
        ├─────────────────────────────────────────────────────────────┤
        │  ConfigError          DatabaseError        PayloadError      │
        │  (CONFIG)             (DATABASE)           (PAYLOAD)         │
        │     │                     │                    │             │
        │  InvalidConfigError   PersistenceError     AttributeNotFound │
        │  PolicyCacheError                                            │
        │  HandlerNotFoundError DispatchError                          │
        │                       (DISPATCH)                             │
        └─────────────────────────────────────────────────────────────┘

How the retry core treats them:
    - **PolicyCacheError:** fatal, the policy mapping could not be built
    - **PersistenceError:** a reconcile batch was rolled back
    - **HandlerNotFoundError / DispatchError:** logged and swallowed by
      the dispatch gateway
    - **AttributeNotFoundError:** surfaced to the handler that asked

Usage:
    from retryline.core.errors import PersistenceError

    try:
        ledger.reconcile(batch)
    except PersistenceError as e:
        logger.error("batch_failed", **e.to_dict())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"             # Missing policy table, bad policy rows
    DATABASE = "DATABASE"         # Ledger reads and upserts
    DISPATCH = "DISPATCH"         # Handler resolution and invocation
    PAYLOAD = "PAYLOAD"           # Opaque request/response payload access
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Known fields are typed; anything else goes in ``metadata``.
    """

    process_name: str | None = None
    method_name: str | None = None
    record_id: str | None = None
    batch_size: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return only the populated fields."""
        result: dict[str, Any] = {}
        if self.process_name is not None:
            result["process_name"] = self.process_name
        if self.method_name is not None:
            result["method_name"] = self.method_name
        if self.record_id is not None:
            result["record_id"] = self.record_id
        if self.batch_size is not None:
            result["batch_size"] = self.batch_size
        if self.metadata:
            result.update(self.metadata)
        return result


class RetrylineError(Exception):
    """
    Base exception for all retryline errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.

    Examples:
        >>> error = RetrylineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(process_name="Billing").context.process_name
        'Billing'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> RetrylineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise PersistenceError("upsert failed").with_context(batch_size=12)
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(RetrylineError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


class PolicyCacheError(ConfigError):
    """The policy mapping could not be built from its source."""


class HandlerNotFoundError(ConfigError):
    """No retry handler registered under a process name."""

    def __init__(self, process_name: str, available: list[str] | None = None):
        self.process_name = process_name
        self.available = available or []
        super().__init__(
            f"No retry handler registered for process {process_name!r}. "
            f"Available: {self.available or 'none'}",
            context=ErrorContext(process_name=process_name),
        )


# =============================================================================
# DISPATCH ERRORS
# =============================================================================


class DispatchError(RetrylineError):
    """A due retry could not be handed to its handler."""

    default_category = ErrorCategory.DISPATCH
    default_retryable = False


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(RetrylineError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class PersistenceError(DatabaseError):
    """A reconcile batch could not be upserted and was rolled back."""


# =============================================================================
# PAYLOAD ERRORS
# =============================================================================


class PayloadError(RetrylineError):
    """An opaque payload could not be read."""

    default_category = ErrorCategory.PAYLOAD
    default_retryable = False


class AttributeNotFoundError(PayloadError):
    """A named attribute is absent from a payload."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Attribute not found in payload: {key}")


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "RetrylineError",
    "ConfigError",
    "InvalidConfigError",
    "PolicyCacheError",
    "HandlerNotFoundError",
    "DispatchError",
    "DatabaseError",
    "PersistenceError",
    "PayloadError",
    "AttributeNotFoundError",
]
