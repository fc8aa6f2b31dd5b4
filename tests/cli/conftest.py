"""Fixtures for CLI tests: a temp database and a YAML policy file."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from retryline.core.settings import get_settings

POLICY_YAML = """\
policies:
  - process: Billing
    max_retries: 3
    interval_minutes: 30
    start_after_minutes: 5
  - process: Billing
    method: refund
    max_retries: 1
    interval_minutes: 60
  - process: demo.echo
    max_retries: 2
    interval_minutes: 1
  - process: Legacy
    max_retries: 5
    active: false
"""


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    monkeypatch.delenv("RETRYLINE_POLICY_FILE", raising=False)
    monkeypatch.setenv("RETRYLINE_DATABASE_PATH", str(tmp_path / "default.db"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def db(tmp_path) -> str:
    return str(tmp_path / "retry.db")


@pytest.fixture()
def policy_file(tmp_path) -> str:
    path = tmp_path / "policies.yaml"
    path.write_text(POLICY_YAML)
    return str(path)


@pytest.fixture()
def write_notifications(tmp_path):
    def _write(notifications, name="batch.json"):
        path = tmp_path / name
        path.write_text(json.dumps(notifications))
        return str(path)

    return _write
