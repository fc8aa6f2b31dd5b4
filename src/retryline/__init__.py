"""
Retryline - policy-driven retry orchestration.

Business logic reports failed operations as notifications; retryline keeps
one retry chain per failed operation, schedules the next attempt from the
configured policy, and hands due retries back to a handler registered for
the process.

- retryline.core: errors, results, logging, settings, schema, events, ORM
- retryline.retry: policies, ledger, handlers, dispatch, scheduler, ingestion
- retryline.cli: ``retryline`` command line
"""

__version__ = "0.3.0"

from retryline.retry import (  # noqa: E402
    DispatchGateway,
    FailureNotification,
    HandlerRegistry,
    NotificationConsumer,
    NotificationStatus,
    PolicyCache,
    RetryAwareHandler,
    RetryLedger,
    RetryLogRecord,
    RetryOverrides,
    RetryPolicy,
    RetryScheduler,
)

__all__ = [
    "__version__",
    "DispatchGateway",
    "FailureNotification",
    "HandlerRegistry",
    "NotificationConsumer",
    "NotificationStatus",
    "PolicyCache",
    "RetryAwareHandler",
    "RetryLedger",
    "RetryLogRecord",
    "RetryOverrides",
    "RetryPolicy",
    "RetryScheduler",
]
