"""Retry policy sources and the in-memory policy cache.

Policies are read-only configuration keyed by ``process`` or
``process--method``. The cache loads them once from a ``PolicySource`` and
serves lookups from memory; ``reload()`` swaps in a freshly built mapping so
readers never observe a partial one.

Architecture:

    .. code-block:: text

        PolicySource ──load_policies()──► PolicyCache ──resolve()──► RetryLedger
        ┌──────────────────────┐          ┌──────────────────────────────────┐
        │ StaticPolicySource   │          │ {"Billing": RetryPolicy,         │
        │ SqlPolicySource      │          │  "Billing--charge": RetryPolicy} │
        │ YamlPolicySource     │          │ (active policies only)           │
        └──────────────────────┘          └──────────────────────────────────┘

Example:
    >>> cache = PolicyCache(StaticPolicySource([RetryPolicy("Billing", max_retry_count=3)]))
    >>> cache.resolve("Billing", "charge").key
    'Billing'
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol, runtime_checkable

import yaml

from retryline.core.errors import InvalidConfigError, PersistenceError, PolicyCacheError
from retryline.core.logging import get_logger
from retryline.core.protocols import Connection

from .models import RetryPolicy, policy_key

logger = get_logger(__name__)


@runtime_checkable
class PolicySource(Protocol):
    """Anything that can produce the full list of configured policies."""

    def load_policies(self) -> list[RetryPolicy]: ...


class StaticPolicySource:
    """Policies supplied in code (tests, embedding applications)."""

    def __init__(self, policies: Iterable[RetryPolicy]):
        self._policies = list(policies)

    def load_policies(self) -> list[RetryPolicy]:
        return list(self._policies)


class SqlPolicySource:
    """Policies stored in the ``retry_policies`` table."""

    def __init__(self, conn: Connection):
        self._conn = conn

    def load_policies(self) -> list[RetryPolicy]:
        rows = self._conn.execute(
            """
            SELECT process_name, method_name, max_retry_count,
                   retry_interval_minutes, start_first_retry_after_minutes, is_active
            FROM retry_policies
            ORDER BY policy_key
            """
        ).fetchall()
        return [
            RetryPolicy(
                process_name=row[0],
                method_name=row[1],
                max_retry_count=row[2] or 0,
                retry_interval_minutes=row[3] or 0,
                start_first_retry_after_minutes=row[4] or 0,
                is_active=bool(row[5]),
            )
            for row in rows
        ]

    def save_policies(self, policies: Iterable[RetryPolicy]) -> int:
        """Insert or replace policies by key. Returns the number written."""
        rows = [
            (
                p.key,
                p.process_name,
                p.method_name,
                p.max_retry_count,
                p.retry_interval_minutes,
                p.start_first_retry_after_minutes,
                1 if p.is_active else 0,
            )
            for p in policies
        ]
        if not rows:
            return 0
        try:
            self._conn.executemany(
                """
                INSERT INTO retry_policies (
                    policy_key, process_name, method_name, max_retry_count,
                    retry_interval_minutes, start_first_retry_after_minutes, is_active
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(policy_key) DO UPDATE SET
                    process_name = excluded.process_name,
                    method_name = excluded.method_name,
                    max_retry_count = excluded.max_retry_count,
                    retry_interval_minutes = excluded.retry_interval_minutes,
                    start_first_retry_after_minutes = excluded.start_first_retry_after_minutes,
                    is_active = excluded.is_active
                """,
                rows,
            )
            self._conn.commit()
        except Exception as e:
            self._conn.rollback()
            raise PersistenceError(f"Failed to save {len(rows)} retry policies: {e}", cause=e) from e
        logger.info("policies_saved", count=len(rows))
        return len(rows)


class YamlPolicySource:
    """Policies declared in a YAML file.

    Example file::

        policies:
          - process: Billing
            max_retries: 3
            interval_minutes: 30
            start_after_minutes: 5
          - process: Billing
            method: refund
            max_retries: 1
            interval_minutes: 60
            active: false
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load_policies(self) -> list[RetryPolicy]:
        with self._path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        entries = data.get("policies", []) if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise InvalidConfigError("policies", entries, f"{self._path}: 'policies' must be a list")
        return [RetryPolicy.from_dict(entry) for entry in entries]


class PolicyCache:
    """Process-wide, read-mostly map from policy key to active ``RetryPolicy``.

    Loaded lazily on first ``resolve`` (or eagerly with ``load()``). A load
    failure raises ``PolicyCacheError`` and leaves the previous mapping in
    place. Thread-safe.
    """

    def __init__(self, source: PolicySource):
        self._source = source
        self._policies: dict[str, RetryPolicy] | None = None
        self._lock = threading.RLock()

    @property
    def source(self) -> PolicySource:
        return self._source

    @property
    def is_loaded(self) -> bool:
        return self._policies is not None

    def load(self) -> int:
        """Load policies if not loaded yet. Returns the number of active policies."""
        return len(self._ensure_loaded())

    def reload(self) -> int:
        """Rebuild the mapping from the source and swap it in."""
        with self._lock:
            self._policies = self._build()
            return len(self._policies)

    def invalidate(self) -> None:
        """Drop the mapping; the next lookup reloads it."""
        with self._lock:
            self._policies = None

    def resolve(self, process_name: str, method_name: str | None = None) -> RetryPolicy | None:
        """Find the policy for a process/method pair.

        A ``process--method`` policy wins; otherwise the process-level policy
        applies. Returns None when neither exists.
        """
        mapping = self._mapping()
        if method_name and method_name.strip():
            policy = mapping.get(policy_key(process_name, method_name))
            if policy is not None:
                return policy
        return mapping.get(policy_key(process_name))

    def get(self, key: str) -> RetryPolicy | None:
        """Exact lookup by policy key, no fallback."""
        return self._mapping().get(key)

    def policies(self) -> list[RetryPolicy]:
        """Active policies sorted by key."""
        mapping = self._mapping()
        return [mapping[k] for k in sorted(mapping)]

    def __len__(self) -> int:
        return len(self._mapping())

    def __contains__(self, key: str) -> bool:
        return key in self._mapping()

    def _mapping(self) -> dict[str, RetryPolicy]:
        policies = self._policies
        if policies is None:
            policies = self._ensure_loaded()
        return policies

    def _ensure_loaded(self) -> dict[str, RetryPolicy]:
        # Mapping is read under the lock; invalidate() may run right after.
        with self._lock:
            if self._policies is None:
                self._policies = self._build()
            return self._policies

    def _build(self) -> dict[str, RetryPolicy]:
        try:
            loaded = self._source.load_policies()
        except Exception as e:
            logger.error("policy_cache_load_failed", source=type(self._source).__name__, error=str(e))
            raise PolicyCacheError(f"Failed to load retry policies from {type(self._source).__name__}: {e}", cause=e) from e

        mapping: dict[str, RetryPolicy] = {}
        inactive = 0
        for policy in loaded:
            if not policy.is_active:
                inactive += 1
                continue
            if policy.key in mapping:
                logger.warning("duplicate_policy_key", key=policy.key)
            mapping[policy.key] = policy

        logger.info("policy_cache_loaded", active=len(mapping), inactive=inactive)
        return mapping


__all__ = [
    "PolicyCache",
    "PolicySource",
    "SqlPolicySource",
    "StaticPolicySource",
    "YamlPolicySource",
]
