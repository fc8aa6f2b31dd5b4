"""
Shared pytest fixtures for retryline tests.

This module provides:
- In-memory SQLite with the retry tables
- A fixed, advanceable clock for deterministic due times
- Standard policies (``Billing``, ``Billing--refund``, inactive ``Legacy``)
- Ledger / consumer / registry / gateway wiring
- Handler registry cleanup for test isolation
"""

from __future__ import annotations

import sqlite3
from collections.abc import Generator
from datetime import UTC, datetime, timedelta

import pytest

from retryline.core.schema import create_retry_tables
from retryline.retry.dispatch import DispatchGateway
from retryline.retry.handlers import HandlerRegistry, reset_default_registry
from retryline.retry.ingest import NotificationConsumer
from retryline.retry.ledger import RetryLedger
from retryline.retry.models import RetryPolicy
from retryline.retry.policies import PolicyCache, StaticPolicySource

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock returning a fixed time until advanced."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# =============================================================================
# Registry Cleanup
# =============================================================================


@pytest.fixture(autouse=True)
def clean_default_registry() -> Generator[None, None, None]:
    """Reset the global handler registry before and after each test."""
    reset_default_registry()
    yield
    reset_default_registry()


# =============================================================================
# Storage
# =============================================================================


@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory SQLite with retry_policies + retry_log."""
    db = sqlite3.connect(":memory:", check_same_thread=False)
    create_retry_tables(db)
    yield db
    db.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Policies
# =============================================================================


@pytest.fixture()
def policies() -> list[RetryPolicy]:
    return [
        RetryPolicy("Billing", max_retry_count=3, retry_interval_minutes=30, start_first_retry_after_minutes=5),
        RetryPolicy("Billing", "refund", max_retry_count=1, retry_interval_minutes=60, start_first_retry_after_minutes=0),
        RetryPolicy("Legacy", max_retry_count=5, retry_interval_minutes=10, is_active=False),
    ]


@pytest.fixture()
def policy_cache(policies) -> PolicyCache:
    return PolicyCache(StaticPolicySource(policies))


# =============================================================================
# Retry services
# =============================================================================


@pytest.fixture()
def ledger(conn, policy_cache, clock) -> RetryLedger:
    return RetryLedger(conn, policy_cache, clock=clock)


@pytest.fixture()
def consumer(ledger) -> NotificationConsumer:
    return NotificationConsumer(ledger)


@pytest.fixture()
def registry(consumer) -> HandlerRegistry:
    return HandlerRegistry(sink=consumer)


@pytest.fixture()
def gateway(ledger, registry) -> DispatchGateway:
    return DispatchGateway(ledger, registry)
