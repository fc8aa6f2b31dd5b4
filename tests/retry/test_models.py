"""Tests for retry domain models: keys, validation, serialization."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from retryline.core.errors import InvalidConfigError
from retryline.retry.models import (
    FailureNotification,
    NotificationStatus,
    RetryLogRecord,
    RetryOverrides,
    RetryPolicy,
    policy_key,
)


class TestPolicyKey:
    def test_process_only(self):
        assert policy_key("Billing") == "Billing"

    def test_process_and_method(self):
        assert policy_key("Billing", "charge") == "Billing--charge"

    @pytest.mark.parametrize("method", [None, "", "   "])
    def test_blank_method(self, method):
        assert policy_key("Billing", method) == "Billing"


class TestNotificationStatus:
    @pytest.mark.parametrize("value", ["Failure", "failure", "FAILURE", " Failure "])
    def test_parse_failure(self, value):
        assert NotificationStatus.parse(value) is NotificationStatus.FAILURE

    def test_parse_member(self):
        assert NotificationStatus.parse(NotificationStatus.SUCCESS) is NotificationStatus.SUCCESS

    def test_parse_unknown(self):
        with pytest.raises(InvalidConfigError, match="Unknown notification status"):
            NotificationStatus.parse("Maybe")


class TestRetryPolicy:
    def test_key(self):
        assert RetryPolicy("Billing", "refund").key == "Billing--refund"
        assert RetryPolicy("Billing").key == "Billing"

    def test_defaults(self):
        policy = RetryPolicy("Billing")
        assert policy.max_retry_count == 0
        assert policy.is_active is True

    @pytest.mark.parametrize(
        "field",
        ["max_retry_count", "retry_interval_minutes", "start_first_retry_after_minutes"],
    )
    def test_negative_values_rejected(self, field):
        with pytest.raises(InvalidConfigError) as exc_info:
            RetryPolicy("Billing", **{field: -1})
        assert exc_info.value.key == field

    def test_blank_process_rejected(self):
        with pytest.raises(InvalidConfigError):
            RetryPolicy("  ")

    def test_from_dict_short_names(self):
        policy = RetryPolicy.from_dict(
            {"process": "Billing", "method": "refund", "max_retries": "2", "interval_minutes": 15,
             "start_after_minutes": 1, "active": False}
        )
        assert policy == RetryPolicy("Billing", "refund", 2, 15, 1, is_active=False)

    def test_from_dict_column_names(self):
        data = RetryPolicy("Billing", max_retry_count=3, retry_interval_minutes=30).to_dict()
        assert RetryPolicy.from_dict(data) == RetryPolicy("Billing", max_retry_count=3, retry_interval_minutes=30)

    def test_from_dict_bad_number(self):
        with pytest.raises(InvalidConfigError):
            RetryPolicy.from_dict({"process": "Billing", "max_retries": "three"})


class TestRetryOverrides:
    def test_empty(self):
        assert RetryOverrides().is_empty
        assert not RetryOverrides(retry_count=0).is_empty

    def test_negative_rejected(self):
        with pytest.raises(InvalidConfigError):
            RetryOverrides(max_retry_limit=-2)

    def test_to_dict_omits_unset(self):
        assert RetryOverrides(retry_interval=5).to_dict() == {"retry_interval": 5}

    def test_from_dict(self):
        overrides = RetryOverrides.from_dict({"max_retry_limit": "4", "start_first_retry_after": 0})
        assert overrides.max_retry_limit == 4
        assert overrides.start_first_retry_after == 0
        assert overrides.retry_interval is None

    def test_from_none(self):
        assert RetryOverrides.from_dict(None) == RetryOverrides()


class TestFailureNotification:
    def test_create_assigns_notification_id(self):
        a = FailureNotification.create("Billing", "Failure")
        b = FailureNotification.create("Billing", "Failure")
        assert a.notification_id and b.notification_id
        assert a.notification_id != b.notification_id

    def test_create_keeps_explicit_id(self):
        n = FailureNotification.create("Billing", "Failure", notification_id="n-1")
        assert n.notification_id == "n-1"

    def test_is_new_chain(self):
        assert FailureNotification.create("Billing", "Failure").is_new_chain
        assert not FailureNotification.create("Billing", "Failure", record_id="r1").is_new_chain

    def test_wire_form(self):
        original = FailureNotification.create(
            "Billing",
            NotificationStatus.FAILURE,
            record_id="r1",
            method_name="charge",
            request_payload='{"a": 1}',
            error_message="boom",
            overrides=RetryOverrides(retry_interval=3),
        )
        data = original.to_dict()
        assert data["status"] == "Failure"
        assert data["overrides"] == {"retry_interval": 3}
        assert FailureNotification.from_dict(data) == original

    def test_from_dict_defaults(self):
        n = FailureNotification.from_dict({"process_name": "Billing"})
        assert n.status is NotificationStatus.FAILURE
        assert n.record_id is None
        assert n.notification_id is None
        assert n.overrides.is_empty

    def test_from_dict_requires_process(self):
        with pytest.raises(InvalidConfigError):
            FailureNotification.from_dict({"status": "Failure"})


class TestRetryLogRecord:
    def _record(self, **kwargs) -> RetryLogRecord:
        defaults = {
            "id": "r1",
            "process_name": "Billing",
            "status": NotificationStatus.FAILURE,
            "retry_enabled": True,
            "retry_due_at": datetime(2026, 3, 2, 9, 5, tzinfo=UTC),
            "max_retry_limit": 3,
            "retry_count": 1,
        }
        defaults.update(kwargs)
        return RetryLogRecord(**defaults)

    def test_is_due(self):
        record = self._record()
        assert record.is_due(datetime(2026, 3, 2, 9, 5, tzinfo=UTC))
        assert not record.is_due(datetime(2026, 3, 2, 9, 4, tzinfo=UTC))

    def test_not_due_when_disabled_or_processed(self):
        later = datetime(2026, 3, 3, tzinfo=UTC)
        assert not self._record(retry_enabled=False).is_due(later)
        assert not self._record(processed=True).is_due(later)
        assert not self._record(retry_due_at=None).is_due(later)

    def test_retries_remaining(self):
        assert self._record().retries_remaining == 2
        assert self._record(max_retry_limit=None).retries_remaining is None
        assert self._record(retry_count=9).retries_remaining == 0

    def test_to_dict_from_dict(self):
        record = self._record(created_at=datetime(2026, 3, 2, 9, 0, tzinfo=UTC))
        data = record.to_dict()
        assert data["retry_due_at"] == "2026-03-02T09:05:00.000000+00:00"
        assert data["status"] == "Failure"
        assert RetryLogRecord.from_dict(data) == record
