"""Retry ledger - persistent state of every retry chain.

The RetryLedger turns batches of ``FailureNotification`` into upserts of
``retry_log`` rows. It is the only writer of that table.

Architecture:

    .. code-block:: text

        RetryLedger.reconcile(batch)
        ┌──────────────────────────────────────────────────────────────┐
        │ 1. one bulk SELECT of the prior records referenced by batch  │
        │ 2. per notification:                                         │
        │      duplicate delivery?          → skip                     │
        │      no policy / processed /                                 │
        │      status != Failure            → persist, retry off       │
        │      new chain                    → schedule from policy     │
        │                                     (or overrides)           │
        │      existing chain               → count+1, due+interval    │
        │      ceiling reached              → persist, retry off       │
        │ 3. one INSERT ... ON CONFLICT(id) DO UPDATE, then COMMIT     │
        │    (ROLLBACK + PersistenceError on any failure)              │
        └──────────────────────────────────────────────────────────────┘

        Scheduler side:
        list_due(now)         → enabled, unprocessed, retry_due_at <= now
        get_for_dispatch(id)  → narrow projection for handlers

Example:
    >>> ledger = RetryLedger(conn, PolicyCache(SqlPolicySource(conn)))
    >>> [record] = ledger.reconcile([FailureNotification.create("Billing", "Failure")])
    >>> record.retry_count
    0
"""

from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from retryline.core.errors import PersistenceError
from retryline.core.logging import get_logger
from retryline.core.protocols import Connection
from retryline.core.timestamps import ensure_utc, from_iso8601, to_iso8601, utc_now

from .models import FailureNotification, NotificationStatus, RetryLogRecord, RetryOverrides, RetryPolicy
from .policies import PolicyCache

logger = get_logger(__name__)

_COLUMNS = (
    "id",
    "process_name",
    "method_name",
    "status",
    "processed",
    "request_payload",
    "response_payload",
    "error_message",
    "retry_enabled",
    "retry_interval_minutes",
    "max_retry_limit",
    "retry_count",
    "retry_due_at",
    "last_notification_id",
    "created_at",
    "updated_at",
)
_SELECT = ", ".join(_COLUMNS)

_UPSERT_SQL = f"""
    INSERT INTO retry_log ({_SELECT})
    VALUES ({", ".join("?" for _ in _COLUMNS)})
    ON CONFLICT(id) DO UPDATE SET
        {", ".join(f"{c} = excluded.{c}" for c in _COLUMNS if c not in ("id", "created_at"))}
"""


class RetryLedger:
    """Reads and writes retry chains in ``retry_log``.

    Args:
        conn: sqlite3 connection or ``SAConnectionBridge``
        policies: policy cache consulted for every notification
        enforce_retry_limit: stop scheduling once ``retry_count`` would
            reach ``max_retry_limit``; False leaves chains unbounded
        clock: source of "now" (injectable for tests)
    """

    def __init__(
        self,
        conn: Connection,
        policies: PolicyCache,
        *,
        enforce_retry_limit: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._conn = conn
        self._policies = policies
        self._enforce_retry_limit = enforce_retry_limit
        self._clock = clock

    @property
    def policies(self) -> PolicyCache:
        return self._policies

    # =========================================================================
    # RECONCILE
    # =========================================================================

    def reconcile(self, notifications: Iterable[FailureNotification]) -> list[RetryLogRecord]:
        """Apply a batch of notifications and persist the resulting records.

        The whole batch is written in one transaction. Two notifications for
        the same chain in one batch are both computed from the stored record
        and the later one wins.

        Returns:
            The records written, in first-seen order (duplicate deliveries
            are not included)

        Raises:
            PersistenceError: the upsert failed; nothing from the batch was
                committed
            PolicyCacheError: the policy cache could not be loaded
        """
        batch = list(notifications)
        if not batch:
            return []

        now = self._clock()
        prior = self.get_many(self._lookup_id(n) for n in batch if self._lookup_id(n))

        records: dict[str, RetryLogRecord] = {}
        skipped = 0
        for notification in batch:
            previous = prior.get(self._lookup_id(notification) or "")
            if self._is_redelivery(notification, previous):
                skipped += 1
                logger.info(
                    "duplicate_notification_skipped",
                    notification_id=notification.notification_id,
                    record_id=previous.id,
                )
                continue
            if notification.record_id and previous is None:
                logger.warning(
                    "unknown_record_id",
                    record_id=notification.record_id,
                    process_name=notification.process_name,
                )
            record = self._apply(notification, previous, now)
            records[record.id] = record

        written = list(records.values())
        self._upsert(written)
        logger.info(
            "notification_batch_reconciled",
            batch_size=len(batch),
            written=len(written),
            duplicates=skipped,
        )
        return written

    def _apply(
        self,
        notification: FailureNotification,
        previous: RetryLogRecord | None,
        now: datetime,
    ) -> RetryLogRecord:
        """Compute the next state of one chain."""
        if previous is not None:
            record = dataclasses.replace(previous)
        else:
            record = RetryLogRecord(
                id=notification.record_id or notification.notification_id or str(uuid.uuid4()),
                process_name=notification.process_name,
                status=notification.status,
                created_at=now,
            )

        record.process_name = notification.process_name
        record.method_name = notification.method_name
        record.status = notification.status
        record.processed = notification.processed
        record.request_payload = notification.request_payload
        record.response_payload = notification.response_payload
        record.error_message = notification.error_message
        record.last_notification_id = notification.notification_id
        record.updated_at = now

        policy = self._policies.resolve(notification.process_name, notification.method_name)
        if policy is None or notification.processed or notification.status != NotificationStatus.FAILURE:
            # Status is recorded but the chain stops; counters stay as they were.
            record.retry_enabled = False
            logger.debug(
                "retry_not_scheduled",
                record_id=record.id,
                has_policy=policy is not None,
                processed=notification.processed,
                status=notification.status.value,
            )
            return record

        if previous is None or previous.max_retry_limit is None:
            return self._start_chain(record, notification, policy, previous, now)
        if previous.retry_due_at is None:
            # Stored at its ceiling when the chain was created.
            record.retry_enabled = False
            logger.info(
                "retry_limit_reached",
                record_id=record.id,
                retry_count=previous.retry_count,
                max_retry_limit=previous.max_retry_limit,
            )
            return record
        return self._advance_chain(record, previous)

    def _start_chain(
        self,
        record: RetryLogRecord,
        notification: FailureNotification,
        policy: RetryPolicy,
        previous: RetryLogRecord | None,
        now: datetime,
    ) -> RetryLogRecord:
        # Overrides only count when the chain is created by this notification.
        overrides = notification.overrides if previous is None else RetryOverrides()
        interval = _first(overrides.retry_interval, policy.retry_interval_minutes)
        limit = _first(overrides.max_retry_limit, policy.max_retry_count)
        count = _first(overrides.retry_count, 0)
        start_after = _first(overrides.start_first_retry_after, policy.start_first_retry_after_minutes)
        if previous is not None:
            count = max(count, previous.retry_count)

        record.retry_interval_minutes = interval
        record.max_retry_limit = limit
        record.retry_count = count

        if self._enforce_retry_limit and count >= limit:
            record.retry_enabled = False
            record.retry_due_at = None
            logger.info("retry_limit_reached", record_id=record.id, retry_count=count, max_retry_limit=limit)
            return record

        record.retry_enabled = True
        record.retry_due_at = now + timedelta(minutes=start_after)
        logger.debug(
            "retry_chain_started",
            record_id=record.id,
            policy_key=policy.key,
            retry_due_at=to_iso8601(record.retry_due_at),
        )
        return record

    def _advance_chain(self, record: RetryLogRecord, previous: RetryLogRecord) -> RetryLogRecord:
        next_count = previous.retry_count + 1
        limit = previous.max_retry_limit
        if self._enforce_retry_limit and limit is not None and next_count >= limit:
            record.retry_enabled = False
            logger.info(
                "retry_limit_reached",
                record_id=record.id,
                retry_count=previous.retry_count,
                max_retry_limit=limit,
            )
            return record

        record.retry_count = next_count
        record.retry_due_at = previous.retry_due_at + timedelta(minutes=previous.retry_interval_minutes or 0)
        record.retry_enabled = True
        logger.debug(
            "retry_chain_advanced",
            record_id=record.id,
            retry_count=next_count,
            retry_due_at=to_iso8601(record.retry_due_at),
        )
        return record

    @staticmethod
    def _lookup_id(notification: FailureNotification) -> str | None:
        # New chains take their notification_id as record id, so a re-delivered
        # "start chain" notification finds the row it already created.
        return notification.record_id or notification.notification_id

    @staticmethod
    def _is_redelivery(notification: FailureNotification, previous: RetryLogRecord | None) -> bool:
        if previous is None or not notification.notification_id:
            return False
        if notification.is_new_chain:
            return True
        return previous.last_notification_id == notification.notification_id

    def _upsert(self, records: list[RetryLogRecord]) -> None:
        if not records:
            return
        rows = [self._record_to_row(r) for r in records]
        try:
            self._conn.executemany(_UPSERT_SQL, rows)
            self._conn.commit()
        except Exception as e:
            self._conn.rollback()
            logger.error("notification_batch_persist_failed", batch_size=len(rows), error=str(e))
            raise PersistenceError(
                f"Failed to persist {len(rows)} retry log records: {e}",
                cause=e,
            ).with_context(batch_size=len(rows)) from e

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get(self, record_id: str) -> RetryLogRecord | None:
        """Get one record by id."""
        row = self._conn.execute(
            f"SELECT {_SELECT} FROM retry_log WHERE id = ?",
            (record_id,),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def get_many(self, record_ids: Iterable[str]) -> dict[str, RetryLogRecord]:
        """Load several records in one query, keyed by id."""
        ids = list(dict.fromkeys(i for i in record_ids if i))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        rows = self._conn.execute(
            f"SELECT {_SELECT} FROM retry_log WHERE id IN ({placeholders})",
            tuple(ids),
        ).fetchall()
        return {row[0]: self._row_to_record(row) for row in rows}

    def get_for_dispatch(self, record_id: str) -> RetryLogRecord | None:
        """Load the fields a retry handler needs to re-run an operation."""
        row = self._conn.execute(
            """
            SELECT id, process_name, method_name, status, request_payload, retry_count
            FROM retry_log
            WHERE id = ?
            """,
            (record_id,),
        ).fetchone()
        if row is None:
            return None
        return RetryLogRecord(
            id=row[0],
            process_name=row[1],
            method_name=row[2],
            status=NotificationStatus.parse(row[3]),
            request_payload=row[4],
            retry_count=row[5] or 0,
        )

    def list_due(self, now: datetime | None = None, limit: int = 100) -> list[RetryLogRecord]:
        """Records whose next retry is due at *now*, oldest due first."""
        cutoff = to_iso8601(ensure_utc(now) if now is not None else self._clock())
        rows = self._conn.execute(
            f"""
            SELECT {_SELECT}
            FROM retry_log
            WHERE retry_enabled = 1
              AND processed = 0
              AND retry_due_at IS NOT NULL
              AND retry_due_at <= ?
            ORDER BY retry_due_at ASC
            LIMIT ?
            """,
            (cutoff, limit),
        ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def list_records(
        self,
        process_name: str | None = None,
        retry_enabled: bool | None = None,
        limit: int = 100,
    ) -> list[RetryLogRecord]:
        """List records, most recently updated first."""
        query = f"SELECT {_SELECT} FROM retry_log WHERE 1=1"
        params: list = []
        if process_name:
            query += " AND process_name = ?"
            params.append(process_name)
        if retry_enabled is not None:
            query += " AND retry_enabled = ?"
            params.append(1 if retry_enabled else 0)
        query += " ORDER BY updated_at DESC LIMIT ?"
        params.append(limit)
        rows = self._conn.execute(query, tuple(params)).fetchall()
        return [self._row_to_record(row) for row in rows]

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _record_to_row(record: RetryLogRecord) -> tuple:
        return (
            record.id,
            record.process_name,
            record.method_name,
            record.status.value,
            1 if record.processed else 0,
            record.request_payload,
            record.response_payload,
            record.error_message,
            1 if record.retry_enabled else 0,
            record.retry_interval_minutes,
            record.max_retry_limit,
            record.retry_count,
            to_iso8601(record.retry_due_at),
            record.last_notification_id,
            to_iso8601(record.created_at),
            to_iso8601(record.updated_at),
        )

    @staticmethod
    def _row_to_record(row: tuple) -> RetryLogRecord:
        """Convert a database row to a RetryLogRecord."""
        return RetryLogRecord(
            id=row[0],
            process_name=row[1],
            method_name=row[2],
            status=NotificationStatus.parse(row[3]),
            processed=bool(row[4]),
            request_payload=row[5],
            response_payload=row[6],
            error_message=row[7],
            retry_enabled=bool(row[8]),
            retry_interval_minutes=row[9],
            max_retry_limit=row[10],
            retry_count=row[11] or 0,
            retry_due_at=from_iso8601(row[12]),
            last_notification_id=row[13],
            created_at=from_iso8601(row[14]),
            updated_at=from_iso8601(row[15]),
        )


def _first(value: int | None, default: int) -> int:
    return default if value is None else value


__all__ = ["RetryLedger"]
