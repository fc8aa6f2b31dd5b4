"""Tests for policy sources and the PolicyCache."""

from __future__ import annotations

import threading

import pytest

from retryline.core.errors import InvalidConfigError, PolicyCacheError
from retryline.retry.models import RetryPolicy
from retryline.retry.policies import (
    PolicyCache,
    PolicySource,
    SqlPolicySource,
    StaticPolicySource,
    YamlPolicySource,
)


class CountingSource:
    def __init__(self, policies):
        self.policies = list(policies)
        self.loads = 0

    def load_policies(self):
        self.loads += 1
        return list(self.policies)


class BrokenSource:
    def load_policies(self):
        raise RuntimeError("config store unreachable")


# ── Resolution ───────────────────────────────────────────────────────────


class TestResolve:
    def test_process_policy(self, policy_cache):
        policy = policy_cache.resolve("Billing")
        assert policy.key == "Billing"
        assert policy.max_retry_count == 3

    def test_method_policy_wins(self, policy_cache):
        assert policy_cache.resolve("Billing", "refund").key == "Billing--refund"

    def test_falls_back_to_process(self, policy_cache):
        assert policy_cache.resolve("Billing", "charge").key == "Billing"

    def test_blank_method_uses_process(self, policy_cache):
        assert policy_cache.resolve("Billing", "  ").key == "Billing"

    def test_missing(self, policy_cache):
        assert policy_cache.resolve("Shipping") is None
        assert policy_cache.resolve("Shipping", "label") is None

    def test_inactive_excluded(self, policy_cache):
        assert policy_cache.resolve("Legacy") is None
        assert "Legacy" not in policy_cache

    def test_method_only_policy_does_not_cover_other_methods(self):
        cache = PolicyCache(StaticPolicySource([RetryPolicy("Billing", "refund", max_retry_count=1)]))
        assert cache.resolve("Billing", "refund") is not None
        assert cache.resolve("Billing", "charge") is None
        assert cache.resolve("Billing") is None

    def test_exact_get(self, policy_cache):
        assert policy_cache.get("Billing--refund").max_retry_count == 1
        assert policy_cache.get("Billing--charge") is None

    def test_policies_sorted_active(self, policy_cache):
        assert [p.key for p in policy_cache.policies()] == ["Billing", "Billing--refund"]
        assert len(policy_cache) == 2


# ── Lifecycle ────────────────────────────────────────────────────────────


class TestLifecycle:
    def test_lazy_load_once(self):
        source = CountingSource([RetryPolicy("Billing")])
        cache = PolicyCache(source)
        assert not cache.is_loaded

        cache.resolve("Billing")
        cache.resolve("Billing")
        assert source.loads == 1
        assert cache.is_loaded

    def test_load_returns_count(self):
        cache = PolicyCache(StaticPolicySource([RetryPolicy("A"), RetryPolicy("B", is_active=False)]))
        assert cache.load() == 1

    def test_reload_swaps_mapping(self):
        source = CountingSource([RetryPolicy("Billing", max_retry_count=1)])
        cache = PolicyCache(source)
        assert cache.resolve("Billing").max_retry_count == 1

        source.policies = [RetryPolicy("Billing", max_retry_count=7)]
        assert cache.resolve("Billing").max_retry_count == 1
        cache.reload()
        assert cache.resolve("Billing").max_retry_count == 7

    def test_invalidate_forces_reload(self):
        source = CountingSource([RetryPolicy("Billing")])
        cache = PolicyCache(source)
        cache.load()
        cache.invalidate()
        assert not cache.is_loaded
        cache.resolve("Billing")
        assert source.loads == 2

    def test_load_failure_is_fatal(self):
        cache = PolicyCache(BrokenSource())
        with pytest.raises(PolicyCacheError, match="config store unreachable"):
            cache.resolve("Billing")
        assert not cache.is_loaded

    def test_failed_reload_keeps_previous_mapping(self):
        source = CountingSource([RetryPolicy("Billing")])
        cache = PolicyCache(source)
        cache.load()

        source.load_policies = BrokenSource().load_policies
        with pytest.raises(PolicyCacheError):
            cache.reload()
        assert cache.resolve("Billing") is not None

    def test_duplicate_key_last_wins(self):
        cache = PolicyCache(
            StaticPolicySource([RetryPolicy("Billing", max_retry_count=1), RetryPolicy("Billing", max_retry_count=2)])
        )
        assert cache.resolve("Billing").max_retry_count == 2

    def test_concurrent_first_lookup_loads_once(self):
        source = CountingSource([RetryPolicy("Billing")])
        cache = PolicyCache(source)
        threads = [threading.Thread(target=cache.resolve, args=("Billing",)) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert source.loads == 1

    def test_resolve_survives_concurrent_invalidate(self):
        cache = PolicyCache(StaticPolicySource([RetryPolicy("Billing")]))
        stop = threading.Event()

        def invalidate_forever():
            while not stop.is_set():
                cache.invalidate()

        invalidator = threading.Thread(target=invalidate_forever)
        invalidator.start()
        try:
            resolved = [cache.resolve("Billing") for _ in range(2000)]
        finally:
            stop.set()
            invalidator.join(timeout=2)

        assert all(p is not None and p.key == "Billing" for p in resolved)


# ── Sources ──────────────────────────────────────────────────────────────


class TestSqlPolicySource:
    def test_save_and_load(self, conn, policies):
        source = SqlPolicySource(conn)
        assert source.save_policies(policies) == 3

        loaded = {p.key: p for p in source.load_policies()}
        assert loaded["Billing"] == policies[0]
        assert loaded["Billing--refund"] == policies[1]
        assert loaded["Legacy"].is_active is False

    def test_save_replaces_by_key(self, conn):
        source = SqlPolicySource(conn)
        source.save_policies([RetryPolicy("Billing", max_retry_count=1)])
        source.save_policies([RetryPolicy("Billing", max_retry_count=4)])
        [policy] = source.load_policies()
        assert policy.max_retry_count == 4

    def test_save_nothing(self, conn):
        assert SqlPolicySource(conn).save_policies([]) == 0

    def test_feeds_cache(self, conn, policies):
        SqlPolicySource(conn).save_policies(policies)
        cache = PolicyCache(SqlPolicySource(conn))
        assert cache.resolve("Billing", "refund").max_retry_count == 1
        assert cache.resolve("Legacy") is None

    def test_satisfies_protocol(self, conn):
        assert isinstance(SqlPolicySource(conn), PolicySource)
        assert isinstance(StaticPolicySource([]), PolicySource)


class TestYamlPolicySource:
    def test_load(self, tmp_path):
        path = tmp_path / "policies.yaml"
        path.write_text(
            """
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
""",
            encoding="utf-8",
        )
        policies = YamlPolicySource(path).load_policies()
        assert policies == [
            RetryPolicy("Billing", None, 3, 30, 5),
            RetryPolicy("Billing", "refund", 1, 60, 0, is_active=False),
        ]

    def test_bare_list(self, tmp_path):
        path = tmp_path / "policies.yaml"
        path.write_text("- process: Billing\n  max_retries: 2\n", encoding="utf-8")
        assert YamlPolicySource(path).load_policies()[0].max_retry_count == 2

    def test_empty_file(self, tmp_path):
        path = tmp_path / "policies.yaml"
        path.write_text("", encoding="utf-8")
        assert YamlPolicySource(path).load_policies() == []

    def test_invalid_policy(self, tmp_path):
        path = tmp_path / "policies.yaml"
        path.write_text("policies:\n  - process: Billing\n    max_retries: -1\n", encoding="utf-8")
        with pytest.raises(InvalidConfigError):
            YamlPolicySource(path).load_policies()

    def test_policies_not_a_list(self, tmp_path):
        path = tmp_path / "policies.yaml"
        path.write_text("policies: Billing\n", encoding="utf-8")
        with pytest.raises(InvalidConfigError):
            YamlPolicySource(path).load_policies()

    def test_missing_file_wrapped_by_cache(self, tmp_path):
        cache = PolicyCache(YamlPolicySource(tmp_path / "missing.yaml"))
        with pytest.raises(PolicyCacheError):
            cache.load()
