"""
CLI ``retryline db``: database management commands.
"""

from __future__ import annotations

import typer

from retryline.cli.utils import console, get_connection, output_item
from retryline.core.schema import RETRY_TABLES

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database path"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Initialise database schema (create tables)."""
    conn = get_connection(database)
    conn.close()
    output_item({"tables": sorted(RETRY_TABLES.values()), "initialized": True}, as_json=json_out, title="Database Init")


@app.command()
def tables(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show row counts for the retry tables."""
    conn = get_connection(database)
    counts = {
        table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]  # noqa: S608
        for table in sorted(RETRY_TABLES.values())
    }
    conn.close()
    if not json_out:
        console.print("[bold]Table Counts[/bold]")
    output_item(counts, as_json=json_out)
