"""
Retry tables.

Defines table names and DDL for the two tables the retry core owns.

Architecture:
    ::

        RETRY_TABLES:
        ┌────────────────────────────────────────────────────────────┐
        │ policies   → retry_policies  (read-only config, cached)    │
        │ log        → retry_log       (one row per retry chain)     │
        └────────────────────────────────────────────────────────────┘

        Scheduler polling uses idx_retry_log_due:
        SELECT ... FROM retry_log
        WHERE retry_enabled = 1 AND processed = 0 AND retry_due_at <= ?

Examples:
    >>> import sqlite3
    >>> from retryline.core.schema import create_retry_tables
    >>> conn = sqlite3.connect(":memory:")
    >>> create_retry_tables(conn)
"""

from __future__ import annotations

from retryline.core.protocols import Connection

RETRY_TABLES = {
    "policies": "retry_policies",
    "log": "retry_log",
}


RETRY_DDL = {
    # =========================================================================
    # RETRY_POLICIES: one row per process, or per process + method override.
    # policy_key is "process" or "process--method".
    # =========================================================================
    "policies": """
        CREATE TABLE IF NOT EXISTS retry_policies (
            policy_key TEXT PRIMARY KEY,
            process_name TEXT NOT NULL,
            method_name TEXT,
            max_retry_count INTEGER NOT NULL DEFAULT 0,
            retry_interval_minutes INTEGER NOT NULL DEFAULT 0,
            start_first_retry_after_minutes INTEGER NOT NULL DEFAULT 0,
            is_active INTEGER NOT NULL DEFAULT 1
        )
    """,
    # =========================================================================
    # RETRY_LOG: current state of each retry chain (upsert by id).
    # retry_count and retry_due_at only ever move forward.
    # =========================================================================
    "log": """
        CREATE TABLE IF NOT EXISTS retry_log (
            id TEXT PRIMARY KEY,
            process_name TEXT NOT NULL,
            method_name TEXT,
            status TEXT NOT NULL,
            processed INTEGER NOT NULL DEFAULT 0,
            request_payload TEXT,
            response_payload TEXT,
            error_message TEXT,
            retry_enabled INTEGER NOT NULL DEFAULT 0,
            retry_interval_minutes INTEGER,
            max_retry_limit INTEGER,
            retry_count INTEGER NOT NULL DEFAULT 0,
            retry_due_at TEXT,
            last_notification_id TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "log_idx_due": """
        CREATE INDEX IF NOT EXISTS idx_retry_log_due
        ON retry_log(retry_enabled, processed, retry_due_at)
    """,
    "log_idx_process": """
        CREATE INDEX IF NOT EXISTS idx_retry_log_process
        ON retry_log(process_name, method_name)
    """,
}


def create_retry_tables(conn: Connection) -> None:
    """
    Create the retry tables and indexes.

    Safe to call multiple times (CREATE IF NOT EXISTS).
    """
    for _name, ddl in RETRY_DDL.items():
        conn.execute(ddl)
    conn.commit()
