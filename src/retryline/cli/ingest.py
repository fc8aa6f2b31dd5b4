"""
CLI ``retryline ingest``: apply a file of notifications to the ledger.

The file is JSON: a list of notification objects, or ``{"notifications": [...]}``.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer

from retryline.cli.utils import fail, make_services, output_result
from retryline.core.errors import RetrylineError
from retryline.retry.models import FailureNotification

_COLUMNS = ["id", "process_name", "status", "retry_enabled", "retry_count", "retry_due_at"]


def ingest(
    path: Path = typer.Argument(..., help="JSON file of notifications", exists=True, dir_okay=False),
    database: str | None = typer.Option(None, "--database", "-d"),
    policy_file: str | None = typer.Option(None, "--policy-file", "-p"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Reconcile a batch of notifications from a file."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        fail(f"{path} is not valid JSON: {e}")
    items = data.get("notifications", []) if isinstance(data, dict) else data
    if not isinstance(items, list):
        fail(f"{path}: expected a list of notifications")

    try:
        batch = [FailureNotification.from_dict(item) for item in items]
    except (RetrylineError, KeyError, TypeError, ValueError) as e:
        fail(f"Invalid notification in {path}: {e}")

    services = make_services(database, policy_file=policy_file)
    output_result(services.consumer.submit(batch), as_json=json_out, title="Reconciled Records", columns=_COLUMNS)
