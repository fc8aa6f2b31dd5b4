"""Dispatch gateway - routes a due retry to the handler for its process.

``execute_retry`` is the fire-and-forget entry point the scheduler calls for
each due record: it never raises, every failure is logged, and the outcome is
always logged on the way out. ``dispatch`` does the same work and also
returns a ``DispatchOutcome`` for callers that keep statistics.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from retryline.core.errors import DispatchError, HandlerNotFoundError
from retryline.core.logging import bind_context, get_logger, unbind_context

from .handlers import HandlerRegistry
from .ledger import RetryLedger

logger = get_logger(__name__)


class DispatchStatus(str, Enum):
    INVOKED = "invoked"
    RECORD_NOT_FOUND = "record_not_found"
    HANDLER_NOT_FOUND = "handler_not_found"
    HANDLER_FAILED = "handler_failed"


@dataclass(frozen=True)
class DispatchOutcome:
    """What happened to one dispatch attempt."""

    record_id: str
    process_name: str
    status: DispatchStatus
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == DispatchStatus.INVOKED

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "process_name": self.process_name,
            "status": self.status.value,
            "error": self.error,
            "duration_ms": round(self.duration_ms, 3),
        }


class DispatchGateway:
    """Loads a retry record and hands it to the registered handler."""

    def __init__(self, ledger: RetryLedger, registry: HandlerRegistry):
        self._ledger = ledger
        self._registry = registry

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    def execute_retry(self, log_id: str, process_name: str) -> None:
        """Fire-and-forget dispatch. Never raises."""
        self.dispatch(log_id, process_name)

    def dispatch(self, log_id: str, process_name: str) -> DispatchOutcome:
        """Dispatch one retry and report the outcome. Never raises."""
        started = time.perf_counter()
        status = DispatchStatus.HANDLER_FAILED
        error: str | None = None
        bind_context(record_id=log_id, process_name=process_name)
        try:
            record = self._ledger.get_for_dispatch(log_id)
            if record is None:
                status = DispatchStatus.RECORD_NOT_FOUND
                error = f"Retry log record not found: {log_id}"
                logger.warning("retry_record_not_found")
            else:
                if record.process_name != process_name:
                    logger.warning("retry_process_mismatch", record_process_name=record.process_name)
                handler = self._registry.get(process_name)
                handler.invoke_retry(record)
                status = DispatchStatus.INVOKED
        except HandlerNotFoundError as e:
            status = DispatchStatus.HANDLER_NOT_FOUND
            error = e.message
            logger.error("retry_handler_not_found", available=e.available)
        except Exception as e:
            status = DispatchStatus.HANDLER_FAILED
            error = f"{type(e).__name__}: {e}"
            failure = DispatchError(f"Retry dispatch for {process_name!r} failed: {error}", cause=e)
            failure.with_context(record_id=log_id, process_name=process_name)
            logger.exception("retry_dispatch_failed", **failure.to_dict())
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            logger.info("retry_dispatch_finished", status=status.value, duration_ms=round(duration_ms, 3))
            unbind_context("record_id", "process_name")

        return DispatchOutcome(
            record_id=log_id,
            process_name=process_name,
            status=status,
            error=error,
            duration_ms=duration_ms,
        )


__all__ = ["DispatchGateway", "DispatchOutcome", "DispatchStatus"]
