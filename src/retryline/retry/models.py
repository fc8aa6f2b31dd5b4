"""Retry domain models.

Defines the data structures shared by the policy cache, the ledger and the
dispatch gateway:

- RetryPolicy: configured retry parameters for a process (or process + method)
- FailureNotification: outcome of one attempt, as emitted by business logic
- RetryOverrides: per-notification values that replace policy values at chain creation
- RetryLogRecord: persisted state of one retry chain

Example:
    >>> notification = FailureNotification.create(
    ...     process_name="Billing",
    ...     method_name="charge",
    ...     status=NotificationStatus.FAILURE,
    ...     request_payload='{"invoice_id": "INV-1"}',
    ...     error_message="gateway timeout",
    ... )
    >>> notification.is_new_chain
    True
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from retryline.core.errors import InvalidConfigError
from retryline.core.timestamps import from_iso8601, to_iso8601

POLICY_KEY_SEPARATOR = "--"


def policy_key(process_name: str, method_name: str | None = None) -> str:
    """Build the policy lookup key.

    Blank method → ``process_name``; otherwise ``process_name--method_name``.

    Examples:
        >>> policy_key("Billing")
        'Billing'
        >>> policy_key("Billing", "charge")
        'Billing--charge'
        >>> policy_key("Billing", "  ")
        'Billing'
    """
    if method_name is None or not method_name.strip():
        return process_name
    return f"{process_name}{POLICY_KEY_SEPARATOR}{method_name}"


class NotificationStatus(str, Enum):
    """Outcome of one attempt of the original or retried operation."""

    SUCCESS = "Success"
    FAILURE = "Failure"

    @classmethod
    def parse(cls, value: NotificationStatus | str) -> NotificationStatus:
        """Accept enum members or case-insensitive names/values."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if text in (member.value.lower(), member.name.lower()):
                return member
        raise InvalidConfigError("status", value, f"Unknown notification status: {value!r}")


def _non_negative(name: str, value: int | None) -> None:
    if value is not None and value < 0:
        raise InvalidConfigError(name, value, f"{name} must be >= 0, got {value}")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry parameters for a process, optionally narrowed to one method.

    Example:
        >>> policy = RetryPolicy("Billing", "charge", max_retry_count=3,
        ...                      retry_interval_minutes=30, start_first_retry_after_minutes=5)
        >>> policy.key
        'Billing--charge'
    """

    process_name: str
    method_name: str | None = None
    max_retry_count: int = 0
    retry_interval_minutes: int = 0
    start_first_retry_after_minutes: int = 0
    is_active: bool = True

    def __post_init__(self) -> None:
        if not self.process_name or not self.process_name.strip():
            raise InvalidConfigError("process_name", self.process_name, "Policy process_name must not be blank")
        _non_negative("max_retry_count", self.max_retry_count)
        _non_negative("retry_interval_minutes", self.retry_interval_minutes)
        _non_negative("start_first_retry_after_minutes", self.start_first_retry_after_minutes)

    @property
    def key(self) -> str:
        return policy_key(self.process_name, self.method_name)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryPolicy:
        """Build from a config mapping.

        Accepts the column names as well as the short forms used in policy
        files (``process``, ``method``, ``max_retries``, ``interval_minutes``,
        ``start_after_minutes``, ``active``).
        """
        try:
            process_name = data.get("process_name", data.get("process"))
            return cls(
                process_name=process_name,
                method_name=data.get("method_name", data.get("method")) or None,
                max_retry_count=int(data.get("max_retry_count", data.get("max_retries", 0))),
                retry_interval_minutes=int(data.get("retry_interval_minutes", data.get("interval_minutes", 0))),
                start_first_retry_after_minutes=int(
                    data.get("start_first_retry_after_minutes", data.get("start_after_minutes", 0))
                ),
                is_active=bool(data.get("is_active", data.get("active", True))),
            )
        except (TypeError, ValueError) as e:
            raise InvalidConfigError("policy", data, f"Invalid retry policy {data!r}: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "key": self.key,
            "process_name": self.process_name,
            "method_name": self.method_name,
            "max_retry_count": self.max_retry_count,
            "retry_interval_minutes": self.retry_interval_minutes,
            "start_first_retry_after_minutes": self.start_first_retry_after_minutes,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class RetryOverrides:
    """Values that replace the resolved policy when a chain is created.

    Ignored for notifications that extend an existing chain.
    """

    retry_interval: int | None = None
    max_retry_limit: int | None = None
    retry_count: int | None = None
    start_first_retry_after: int | None = None

    def __post_init__(self) -> None:
        _non_negative("retry_interval", self.retry_interval)
        _non_negative("max_retry_limit", self.max_retry_limit)
        _non_negative("retry_count", self.retry_count)
        _non_negative("start_first_retry_after", self.start_first_retry_after)

    @property
    def is_empty(self) -> bool:
        return all(
            v is None
            for v in (self.retry_interval, self.max_retry_limit, self.retry_count, self.start_first_retry_after)
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RetryOverrides:
        if not data:
            return cls()

        def _opt(name: str) -> int | None:
            value = data.get(name)
            return None if value is None else int(value)

        return cls(
            retry_interval=_opt("retry_interval"),
            max_retry_limit=_opt("max_retry_limit"),
            retry_count=_opt("retry_count"),
            start_first_retry_after=_opt("start_first_retry_after"),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            name: value
            for name, value in (
                ("retry_interval", self.retry_interval),
                ("max_retry_limit", self.max_retry_limit),
                ("retry_count", self.retry_count),
                ("start_first_retry_after", self.start_first_retry_after),
            )
            if value is not None
        }


@dataclass(frozen=True)
class FailureNotification:
    """Outcome of one attempt, consumed once by the retry ledger.

    ``record_id`` absent means "start a new retry chain"; present means
    "update that chain". ``processed=True`` marks the chain terminal.
    ``notification_id`` identifies this delivery so re-deliveries of the
    same notification are applied once.
    """

    process_name: str
    status: NotificationStatus
    record_id: str | None = None
    method_name: str | None = None
    processed: bool = False
    request_payload: str | None = None
    response_payload: str | None = None
    error_message: str | None = None
    overrides: RetryOverrides = field(default_factory=RetryOverrides)
    notification_id: str | None = None

    @classmethod
    def create(
        cls,
        process_name: str,
        status: NotificationStatus | str,
        *,
        record_id: str | None = None,
        method_name: str | None = None,
        processed: bool = False,
        request_payload: str | None = None,
        response_payload: str | None = None,
        error_message: str | None = None,
        overrides: RetryOverrides | None = None,
        notification_id: str | None = None,
    ) -> FailureNotification:
        """Create a notification with a fresh ``notification_id``."""
        return cls(
            process_name=process_name,
            status=NotificationStatus.parse(status),
            record_id=record_id,
            method_name=method_name,
            processed=processed,
            request_payload=request_payload,
            response_payload=response_payload,
            error_message=error_message,
            overrides=overrides or RetryOverrides(),
            notification_id=notification_id or str(uuid.uuid4()),
        )

    @property
    def is_new_chain(self) -> bool:
        return not self.record_id

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FailureNotification:
        """Rebuild a notification from its wire (``to_dict``) form."""
        if not data.get("process_name"):
            raise InvalidConfigError("process_name", data.get("process_name"), "Notification needs a process_name")
        return cls(
            process_name=data["process_name"],
            status=NotificationStatus.parse(data.get("status", NotificationStatus.FAILURE)),
            record_id=data.get("record_id") or None,
            method_name=data.get("method_name") or None,
            processed=bool(data.get("processed", False)),
            request_payload=data.get("request_payload"),
            response_payload=data.get("response_payload"),
            error_message=data.get("error_message"),
            overrides=RetryOverrides.from_dict(data.get("overrides")),
            notification_id=data.get("notification_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "notification_id": self.notification_id,
            "record_id": self.record_id,
            "process_name": self.process_name,
            "method_name": self.method_name,
            "status": self.status.value,
            "processed": self.processed,
            "request_payload": self.request_payload,
            "response_payload": self.response_payload,
            "error_message": self.error_message,
            "overrides": self.overrides.to_dict(),
        }


@dataclass
class RetryLogRecord:
    """Persisted state of one retry chain (one row in ``retry_log``).

    ``retry_count`` and ``retry_due_at`` only move forward. The scheduler
    picks up records with ``retry_enabled`` set, ``processed`` unset and
    ``retry_due_at`` in the past.
    """

    id: str
    process_name: str
    status: NotificationStatus
    method_name: str | None = None
    processed: bool = False
    request_payload: str | None = None
    response_payload: str | None = None
    error_message: str | None = None
    retry_enabled: bool = False
    retry_interval_minutes: int | None = None
    max_retry_limit: int | None = None
    retry_count: int = 0
    retry_due_at: datetime | None = None
    last_notification_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def retries_remaining(self) -> int | None:
        """Scheduled retries left before ``max_retry_limit`` (None if unlimited)."""
        if self.max_retry_limit is None:
            return None
        return max(self.max_retry_limit - self.retry_count, 0)

    def is_due(self, now: datetime) -> bool:
        """Whether the scheduler should dispatch this record at *now*."""
        return (
            self.retry_enabled
            and not self.processed
            and self.retry_due_at is not None
            and self.retry_due_at <= now
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "process_name": self.process_name,
            "method_name": self.method_name,
            "status": self.status.value,
            "processed": self.processed,
            "request_payload": self.request_payload,
            "response_payload": self.response_payload,
            "error_message": self.error_message,
            "retry_enabled": self.retry_enabled,
            "retry_interval_minutes": self.retry_interval_minutes,
            "max_retry_limit": self.max_retry_limit,
            "retry_count": self.retry_count,
            "retry_due_at": to_iso8601(self.retry_due_at),
            "last_notification_id": self.last_notification_id,
            "created_at": to_iso8601(self.created_at),
            "updated_at": to_iso8601(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryLogRecord:
        return cls(
            id=data["id"],
            process_name=data["process_name"],
            status=NotificationStatus.parse(data["status"]),
            method_name=data.get("method_name"),
            processed=bool(data.get("processed", False)),
            request_payload=data.get("request_payload"),
            response_payload=data.get("response_payload"),
            error_message=data.get("error_message"),
            retry_enabled=bool(data.get("retry_enabled", False)),
            retry_interval_minutes=data.get("retry_interval_minutes"),
            max_retry_limit=data.get("max_retry_limit"),
            retry_count=int(data.get("retry_count", 0)),
            retry_due_at=from_iso8601(data.get("retry_due_at")),
            last_notification_id=data.get("last_notification_id"),
            created_at=from_iso8601(data.get("created_at")),
            updated_at=from_iso8601(data.get("updated_at")),
        )
