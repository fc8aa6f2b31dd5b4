"""Tests for retryline.core.errors."""

import pytest

from retryline.core.errors import (
    AttributeNotFoundError,
    ConfigError,
    DatabaseError,
    ErrorCategory,
    ErrorContext,
    HandlerNotFoundError,
    InvalidConfigError,
    PayloadError,
    PersistenceError,
    PolicyCacheError,
    RetrylineError,
)


class TestRetrylineError:
    def test_defaults(self):
        error = RetrylineError("boom")
        assert error.message == "boom"
        assert error.category is ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.cause is None

    def test_overrides(self):
        error = RetrylineError("boom", category=ErrorCategory.DATABASE, retryable=True)
        assert error.category is ErrorCategory.DATABASE
        assert error.retryable is True

    def test_cause_is_chained(self):
        cause = ValueError("inner")
        error = RetrylineError("outer", cause=cause)
        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == "inner"

    def test_with_context_known_and_extra_fields(self):
        error = PersistenceError("upsert failed").with_context(batch_size=12, table="retry_log")
        assert error.context.batch_size == 12
        assert error.context.metadata == {"table": "retry_log"}
        assert error.to_dict()["context"] == {"batch_size": 12, "table": "retry_log"}

    def test_to_dict_without_context(self):
        assert RetrylineError("x").to_dict() == {
            "error_type": "RetrylineError",
            "message": "x",
            "category": "INTERNAL",
            "retryable": False,
        }

    def test_repr(self):
        assert repr(PayloadError("bad")) == "PayloadError('bad', category=PAYLOAD)"


class TestHierarchy:
    @pytest.mark.parametrize(
        ("error", "category", "base"),
        [
            (PolicyCacheError("x"), ErrorCategory.CONFIG, ConfigError),
            (InvalidConfigError("k", 1), ErrorCategory.CONFIG, ConfigError),
            (PersistenceError("x"), ErrorCategory.DATABASE, DatabaseError),
            (AttributeNotFoundError("k"), ErrorCategory.PAYLOAD, PayloadError),
        ],
    )
    def test_categories(self, error, category, base):
        assert isinstance(error, base)
        assert error.category is category

    def test_invalid_config_message(self):
        error = InvalidConfigError("max_retry_count", -1)
        assert error.key == "max_retry_count"
        assert error.message == "Invalid configuration for max_retry_count: -1"

    def test_handler_not_found(self):
        error = HandlerNotFoundError("Billing", ["Shipping"])
        assert error.process_name == "Billing"
        assert error.context.process_name == "Billing"
        assert "Shipping" in error.message

    def test_attribute_not_found(self):
        error = AttributeNotFoundError("invoice_id")
        assert error.key == "invoice_id"
        assert error.message == "Attribute not found in payload: invoice_id"


class TestErrorContext:
    def test_only_populated_fields(self):
        assert ErrorContext(record_id="r1").to_dict() == {"record_id": "r1"}
        assert ErrorContext().to_dict() == {}
