"""Retry scheduler - polls the ledger for due retries and dispatches them.

Usage (programmatic)::

    from retryline.retry.scheduler import RetryScheduler

    scheduler = RetryScheduler(ledger, gateway, poll_interval=60)
    scheduler.start()  # blocking - runs until SIGINT/SIGTERM

Usage (CLI)::

    retryline scheduler start --poll-interval 30

A pass dispatches each due record once. Records a handler has not reported
on by the next pass are still due and get dispatched again, so handlers
must tolerate repeat invocations.
"""

from __future__ import annotations

import signal
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from retryline.core.logging import get_logger
from retryline.core.timestamps import to_iso8601, utc_now

from .dispatch import DispatchGateway, DispatchOutcome
from .ledger import RetryLedger

logger = get_logger(__name__)


@dataclass
class SchedulerStats:
    """Aggregate statistics for a scheduler."""

    passes: int = 0
    dispatched: int = 0
    failed: int = 0
    last_pass_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "passes": self.passes,
            "dispatched": self.dispatched,
            "failed": self.failed,
            "last_pass_at": to_iso8601(self.last_pass_at),
        }


class RetryScheduler:
    """Periodically dispatches every retry whose due time has passed."""

    def __init__(
        self,
        ledger: RetryLedger,
        gateway: DispatchGateway,
        *,
        poll_interval: float = 60.0,
        batch_size: int = 100,
        clock: Callable[[], datetime] = utc_now,
        scheduler_id: str | None = None,
    ):
        """
        Args:
            ledger: Source of due records.
            gateway: Dispatches each due record to its handler.
            poll_interval: Seconds between passes.
            batch_size: Max records dispatched per pass.
            clock: Source of "now" (injectable for tests).
            scheduler_id: Custom identifier. Auto-generated if ``None``.
        """
        self._ledger = ledger
        self._gateway = gateway
        self._poll_interval = poll_interval
        self._batch_size = batch_size
        self._clock = clock
        self._scheduler_id = scheduler_id or f"scheduler-{uuid.uuid4().hex[:8]}"
        self._shutdown = threading.Event()
        self._stats = SchedulerStats()

    @property
    def scheduler_id(self) -> str:
        return self._scheduler_id

    @property
    def stats(self) -> SchedulerStats:
        return self._stats

    # ------------------------------------------------------------------ #
    # Single pass
    # ------------------------------------------------------------------ #

    def run_once(self, now: datetime | None = None) -> list[DispatchOutcome]:
        """Dispatch every record due at *now* (default: the clock)."""
        now = now or self._clock()
        due = self._ledger.list_due(now, limit=self._batch_size)
        outcomes = [self._gateway.dispatch(record.id, record.process_name) for record in due]

        failed = sum(1 for o in outcomes if not o.ok)
        self._stats.passes += 1
        self._stats.dispatched += len(outcomes)
        self._stats.failed += failed
        self._stats.last_pass_at = now
        logger.info(
            "scheduler_pass_finished",
            scheduler_id=self._scheduler_id,
            due=len(due),
            failed=failed,
        )
        return outcomes

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Run passes until ``stop()`` (blocking). Installs signal handlers
        for graceful shutdown on SIGINT / SIGTERM.
        """
        logger.info(
            "scheduler_starting",
            scheduler_id=self._scheduler_id,
            poll_interval=self._poll_interval,
            batch_size=self._batch_size,
        )
        try:
            signal.signal(signal.SIGINT, self._handle_signal)
            signal.signal(signal.SIGTERM, self._handle_signal)
        except (ValueError, OSError):
            pass  # Not in main thread

        while not self._shutdown.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("scheduler_pass_failed", scheduler_id=self._scheduler_id)
            self._shutdown.wait(self._poll_interval)

        logger.info("scheduler_stopped", scheduler_id=self._scheduler_id, **self._stats.to_dict())

    def start_background(self) -> threading.Thread:
        """Start the scheduler in a daemon thread. Returns the thread."""
        t = threading.Thread(
            target=self.start,
            name=f"{self._scheduler_id}-loop",
            daemon=True,
        )
        t.start()
        return t

    def stop(self) -> None:
        """Request graceful shutdown."""
        logger.info("scheduler_stopping", scheduler_id=self._scheduler_id)
        self._shutdown.set()

    @property
    def is_stopping(self) -> bool:
        return self._shutdown.is_set()

    def _handle_signal(self, signum: int, _frame: Any) -> None:
        logger.info("scheduler_signal_received", signal=signum)
        self.stop()


__all__ = ["RetryScheduler", "SchedulerStats"]
