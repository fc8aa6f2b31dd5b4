"""Runtime settings for retryline services.

Settings are environment-driven (``RETRYLINE_`` prefix) with ``.env``
support and validated once at startup.

Fields
──────
database_path        : SQLite file holding ``retry_policies`` and ``retry_log``
policy_file          : Optional YAML file of policies (overrides the table)
enforce_retry_limit  : Stop marking chains retry-enabled at ``max_retry_limit``
poll_interval        : Seconds between scheduler passes
batch_size           : Max due records dispatched per pass
log_level, json_logs : Structlog configuration
service_name         : ``service.name`` in every log line

Examples:
    >>> from retryline.core.settings import RetrylineSettings
    >>> settings = RetrylineSettings(database_path="retry.db")
    >>> settings.enforce_retry_limit
    True
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetrylineSettings(BaseSettings):
    """Common settings shared by the CLI, the scheduler and embedding services."""

    model_config = SettingsConfigDict(
        env_prefix="RETRYLINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_path: Path = Field(
        default_factory=lambda: Path.home() / ".retryline" / "retryline.db",
        description="SQLite database holding policies and the retry log",
    )
    policy_file: Path | None = None

    # ── Ledger ───────────────────────────────────────────────────
    enforce_retry_limit: bool = True

    # ── Scheduler ────────────────────────────────────────────────
    poll_interval: float = Field(default=60.0, gt=0)
    batch_size: int = Field(default=100, ge=1)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None
    service_name: str = "retryline"


@lru_cache(maxsize=1)
def get_settings() -> RetrylineSettings:
    """Return the process-wide settings (read once)."""
    return RetrylineSettings()
