"""
CLI utility helpers: output formatting and service wiring.
"""

from __future__ import annotations

import importlib
import json
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from retryline.core.errors import RetrylineError
from retryline.core.result import Result
from retryline.core.schema import create_retry_tables
from retryline.core.settings import get_settings
from retryline.retry.dispatch import DispatchGateway
from retryline.retry.handlers import HandlerRegistry, get_default_registry
from retryline.retry.ingest import NotificationConsumer
from retryline.retry.ledger import RetryLedger
from retryline.retry.policies import PolicyCache, PolicySource, SqlPolicySource, YamlPolicySource

console = Console()
err_console = Console(stderr=True)


# ── Connection helper ────────────────────────────────────────────────────


def get_connection(database: str | None = None) -> sqlite3.Connection:
    """Open the retry database (creating tables).  Defaults to settings.database_path.

    Not bound to the opening thread: the scheduler loop may run in a background thread.
    """
    db_path = Path(database) if database else get_settings().database_path
    if str(db_path) != ":memory:":
        db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    create_retry_tables(conn)
    return conn


@dataclass
class Services:
    """Everything a CLI command needs, wired against one connection."""

    conn: sqlite3.Connection
    policies: PolicyCache
    ledger: RetryLedger
    consumer: NotificationConsumer
    registry: HandlerRegistry
    gateway: DispatchGateway


def policy_source(conn: sqlite3.Connection, policy_file: str | None = None) -> PolicySource:
    """YAML file if given (or configured), otherwise the ``retry_policies`` table."""
    path = policy_file or get_settings().policy_file
    if path:
        return YamlPolicySource(path)
    return SqlPolicySource(conn)


def make_services(
    database: str | None = None,
    *,
    policy_file: str | None = None,
    registry: HandlerRegistry | None = None,
) -> Services:
    """Wire connection → policy cache → ledger → consumer → gateway."""
    settings = get_settings()
    conn = get_connection(database)
    policies = PolicyCache(policy_source(conn, policy_file))
    ledger = RetryLedger(conn, policies, enforce_retry_limit=settings.enforce_retry_limit)
    consumer = NotificationConsumer(ledger)
    registry = registry if registry is not None else get_default_registry()
    registry.bind_sink(consumer)
    return Services(
        conn=conn,
        policies=policies,
        ledger=ledger,
        consumer=consumer,
        registry=registry,
        gateway=DispatchGateway(ledger, registry),
    )


def load_handler_modules(modules: list[str] | None) -> None:
    """Import modules whose ``@retry_handler`` decorators populate the default registry."""
    for name in modules or []:
        try:
            importlib.import_module(name)
        except ImportError as e:
            fail(f"Cannot import handler module {name!r}: {e}")


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert a domain object / dict to a plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def fail(message: str, code: int = 1) -> NoReturn:
    """Print an error and exit."""
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=code)


def fail_on_error(error: Exception) -> NoReturn:
    if isinstance(error, RetrylineError):
        fail(f"{error.message} ({error.category.value})")
    fail(str(error))


def output_items(
    items: list[Any],
    *,
    as_json: bool = False,
    title: str = "",
    columns: list[str] | None = None,
) -> None:
    """Render a list of domain objects as a table (or JSON)."""
    rows = [_to_dict(i) for i in items]
    if as_json:
        console.print_json(json.dumps(rows, default=str))
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    cols = columns or list(rows[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in cols:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if row.get(c) is None else str(row.get(c)) for c in cols))
    console.print(table)


def output_item(item: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a single object as key-value pairs (or JSON)."""
    data = _to_dict(item)
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def output_result(result: Result, *, as_json: bool = False, title: str = "", columns: list[str] | None = None) -> None:
    """Render an ``Ok`` value, or print the ``Err`` and exit 1."""
    if result.is_err():
        fail_on_error(result.error)
    value = result.unwrap()
    if isinstance(value, list):
        output_items(value, as_json=as_json, title=title, columns=columns)
    else:
        output_item(value, as_json=as_json, title=title)
