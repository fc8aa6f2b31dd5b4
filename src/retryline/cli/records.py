"""
CLI ``retryline records``: inspect retry chains.
"""

from __future__ import annotations

from datetime import datetime

import typer

from retryline.cli.utils import fail, make_services, output_item, output_items
from retryline.core.timestamps import ensure_utc

app = typer.Typer(no_args_is_help=True)

_COLUMNS = ["id", "process_name", "method_name", "status", "retry_count", "max_retry_limit", "retry_due_at"]


@app.command()
def show(
    record_id: str = typer.Argument(..., help="Retry log record ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one retry chain."""
    services = make_services(database)
    record = services.ledger.get(record_id)
    if record is None:
        fail(f"Retry log record not found: {record_id}")
    output_item(record, as_json=json_out, title=f"Retry Record {record_id}")


@app.command("list")
def list_records(
    process_name: str | None = typer.Option(None, "--process", "-P"),
    enabled_only: bool = typer.Option(False, "--enabled", help="Only retry-enabled chains"),
    limit: int = typer.Option(50, "--limit", "-n"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List retry chains, most recently updated first."""
    services = make_services(database)
    records = services.ledger.list_records(
        process_name=process_name,
        retry_enabled=True if enabled_only else None,
        limit=limit,
    )
    output_items(records, as_json=json_out, title="Retry Records", columns=_COLUMNS + ["retry_enabled"])


@app.command()
def due(
    at: datetime | None = typer.Option(None, "--at", help="Evaluate due-ness at this time (UTC)"),
    limit: int = typer.Option(100, "--limit", "-n"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List retries that are due now (or at --at)."""
    services = make_services(database)
    records = services.ledger.list_due(ensure_utc(at) if at else None, limit=limit)
    output_items(records, as_json=json_out, title="Due Retries", columns=_COLUMNS)
