"""Tests for RetryScheduler: due selection, passes, lifecycle."""

from __future__ import annotations

import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from retryline.retry.builtin import register_builtin_handlers
from retryline.retry.dispatch import DispatchStatus
from retryline.retry.models import FailureNotification, NotificationStatus
from retryline.retry.scheduler import RetryScheduler, SchedulerStats


def _start_chain(ledger, process_name="Billing", **kwargs):
    [record] = ledger.reconcile([FailureNotification.create(process_name, NotificationStatus.FAILURE, **kwargs)])
    return record


class RecordingHandler:
    def __init__(self):
        self.ids = []

    def invoke_retry(self, record):
        self.ids.append(record.id)


@pytest.fixture()
def handler(registry):
    h = RecordingHandler()
    registry.register("Billing", h)
    return h


@pytest.fixture()
def scheduler(ledger, gateway, clock):
    return RetryScheduler(ledger, gateway, poll_interval=0.01, batch_size=10, clock=clock)


class TestRunOnce:
    def test_nothing_due(self, ledger, scheduler, handler):
        _start_chain(ledger)
        assert scheduler.run_once() == []
        assert handler.ids == []

    def test_dispatches_due_records(self, ledger, scheduler, handler, clock):
        record = _start_chain(ledger)
        clock.advance(minutes=5)

        outcomes = scheduler.run_once()

        assert [o.record_id for o in outcomes] == [record.id]
        assert outcomes[0].status is DispatchStatus.INVOKED
        assert handler.ids == [record.id]

    def test_explicit_now(self, ledger, scheduler, handler, clock):
        record = _start_chain(ledger)
        outcomes = scheduler.run_once(clock.now + timedelta(hours=1))
        assert [o.record_id for o in outcomes] == [record.id]

    def test_skips_disabled_and_unpoliced(self, ledger, scheduler, handler, clock):
        _start_chain(ledger, "Shipping")
        record = _start_chain(ledger)
        ledger.reconcile([FailureNotification.create("Billing", "Success", record_id=record.id, processed=True)])

        assert scheduler.run_once(clock.now + timedelta(days=1)) == []

    def test_batch_size_limits_pass(self, ledger, gateway, handler, clock):
        for _ in range(5):
            _start_chain(ledger)
        scheduler = RetryScheduler(ledger, gateway, batch_size=2, clock=clock)
        assert len(scheduler.run_once(clock.now + timedelta(hours=1))) == 2

    def test_handler_failures_counted(self, ledger, registry, scheduler, clock):
        register_builtin_handlers(registry)
        _start_chain(ledger, "Billing")
        clock.advance(minutes=5)

        [outcome] = scheduler.run_once()

        assert outcome.status is DispatchStatus.HANDLER_NOT_FOUND
        assert scheduler.stats.failed == 1
        assert scheduler.stats.dispatched == 1
        assert scheduler.stats.passes == 1
        assert scheduler.stats.last_pass_at == clock.now

    def test_unreported_record_is_dispatched_again(self, ledger, scheduler, handler, clock):
        record = _start_chain(ledger)
        clock.advance(minutes=5)
        scheduler.run_once()
        scheduler.run_once()
        assert handler.ids == [record.id, record.id]


class SignallingHandler(RecordingHandler):
    def __init__(self):
        super().__init__()
        self.called = threading.Event()

    def invoke_retry(self, record):
        super().invoke_retry(record)
        self.called.set()


class TestLifecycle:
    def test_background_loop_dispatches_due_records(self, ledger, gateway, registry, clock):
        handler = SignallingHandler()
        registry.register("Billing", handler)
        record = _start_chain(ledger)
        clock.advance(minutes=5)
        scheduler = RetryScheduler(ledger, gateway, poll_interval=0.01, clock=clock)

        thread = scheduler.start_background()
        assert handler.called.wait(timeout=2)
        scheduler.stop()
        thread.join(timeout=2)

        assert not thread.is_alive()
        assert scheduler.is_stopping
        assert handler.ids[0] == record.id
        assert scheduler.stats.dispatched >= 1
        assert scheduler.stats.failed == 0

    def test_pass_errors_do_not_stop_loop(self, gateway):
        ledger = MagicMock()
        calls = []

        def list_due(now, limit):
            calls.append(now)
            if len(calls) >= 3:
                scheduler.stop()
            raise RuntimeError("database is locked")

        ledger.list_due.side_effect = list_due
        scheduler = RetryScheduler(ledger, gateway, poll_interval=0.001)
        scheduler.start_background().join(timeout=2)

        assert len(calls) >= 3

    def test_stats_to_dict(self):
        assert SchedulerStats().to_dict() == {"passes": 0, "dispatched": 0, "failed": 0, "last_pass_at": None}
