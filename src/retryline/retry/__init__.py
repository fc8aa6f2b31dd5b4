"""Retry orchestration - policies, the retry ledger, dispatch and scheduling.

ARCHITECTURE
────────────
::

    Business logic
      │  FailureNotification (batch)
      ▼
    NotificationConsumer / EventBusIngestor
      │
      ▼
    RetryLedger.reconcile ──► PolicyCache.resolve(process, method)
      │  upsert retry_log (one transaction per batch)
      ▼
    RetryScheduler.run_once ──► RetryLedger.list_due(now)
      │
      ▼
    DispatchGateway.execute_retry(log_id, process_name)
      ├── RetryLedger.get_for_dispatch
      └── HandlerRegistry.get(process_name).invoke_retry(record)
            │  report_success / report_failure
            └──────────► NotificationConsumer (closes the loop)
"""

from .dispatch import DispatchGateway, DispatchOutcome, DispatchStatus
from .handlers import (
    HandlerRegistry,
    NotificationSink,
    RetryAwareHandler,
    RetryHandler,
    get_default_registry,
    reset_default_registry,
    retry_handler,
)
from .ingest import (
    NOTIFICATIONS_EVENT,
    EventBusIngestor,
    NotificationConsumer,
    notifications_event,
    publish_notifications,
)
from .ledger import RetryLedger
from .models import (
    FailureNotification,
    NotificationStatus,
    RetryLogRecord,
    RetryOverrides,
    RetryPolicy,
    policy_key,
)
from .payload import PayloadReader
from .policies import PolicyCache, PolicySource, SqlPolicySource, StaticPolicySource, YamlPolicySource
from .scheduler import RetryScheduler, SchedulerStats

__all__ = [
    # Models
    "FailureNotification",
    "NotificationStatus",
    "RetryLogRecord",
    "RetryOverrides",
    "RetryPolicy",
    "policy_key",
    # Policies
    "PolicyCache",
    "PolicySource",
    "SqlPolicySource",
    "StaticPolicySource",
    "YamlPolicySource",
    # Ledger
    "RetryLedger",
    # Handlers
    "HandlerRegistry",
    "NotificationSink",
    "PayloadReader",
    "RetryAwareHandler",
    "RetryHandler",
    "get_default_registry",
    "reset_default_registry",
    "retry_handler",
    # Dispatch and scheduling
    "DispatchGateway",
    "DispatchOutcome",
    "DispatchStatus",
    "RetryScheduler",
    "SchedulerStats",
    # Ingestion
    "NOTIFICATIONS_EVENT",
    "EventBusIngestor",
    "NotificationConsumer",
    "notifications_event",
    "publish_notifications",
]
