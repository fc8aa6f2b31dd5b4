"""
CLI ``retryline scheduler``: dispatch due retries.
"""

from __future__ import annotations

from datetime import datetime

import typer

from retryline.cli.utils import console, load_handler_modules, make_services, output_items
from retryline.core.settings import get_settings
from retryline.core.timestamps import ensure_utc
from retryline.retry.builtin import register_builtin_handlers
from retryline.retry.handlers import get_default_registry
from retryline.retry.scheduler import RetryScheduler

app = typer.Typer(no_args_is_help=True)

_HANDLERS_HELP = "Module(s) registering @retry_handler classes (repeatable)"


def _build(database: str | None, policy_file: str | None, handlers: list[str] | None, demo: bool):
    load_handler_modules(handlers)
    if demo:
        register_builtin_handlers(get_default_registry())
    return make_services(database, policy_file=policy_file)


@app.command("run-once")
def run_once(
    at: datetime | None = typer.Option(None, "--at", help="Treat this time (UTC) as now"),
    handlers: list[str] | None = typer.Option(None, "--handlers", "-H", help=_HANDLERS_HELP),
    demo: bool = typer.Option(False, "--demo", help="Register the built-in demo handlers"),
    batch_size: int | None = typer.Option(None, "--batch-size", "-b"),
    database: str | None = typer.Option(None, "--database", "-d"),
    policy_file: str | None = typer.Option(None, "--policy-file", "-p"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run a single scheduler pass and report each dispatch."""
    services = _build(database, policy_file, handlers, demo)
    scheduler = RetryScheduler(
        services.ledger,
        services.gateway,
        batch_size=batch_size or get_settings().batch_size,
    )
    outcomes = scheduler.run_once(ensure_utc(at) if at else None)
    output_items(outcomes, as_json=json_out, title="Dispatched Retries")


@app.command()
def start(
    poll_interval: float | None = typer.Option(None, "--poll-interval", "-i", help="Seconds between passes"),
    batch_size: int | None = typer.Option(None, "--batch-size", "-b"),
    handlers: list[str] | None = typer.Option(None, "--handlers", "-H", help=_HANDLERS_HELP),
    demo: bool = typer.Option(False, "--demo", help="Register the built-in demo handlers"),
    database: str | None = typer.Option(None, "--database", "-d"),
    policy_file: str | None = typer.Option(None, "--policy-file", "-p"),
) -> None:
    """Start the scheduler loop (blocking, Ctrl-C to stop)."""
    settings = get_settings()
    services = _build(database, policy_file, handlers, demo)
    scheduler = RetryScheduler(
        services.ledger,
        services.gateway,
        poll_interval=poll_interval or settings.poll_interval,
        batch_size=batch_size or settings.batch_size,
    )
    console.print(
        f"[bold green]Scheduler {scheduler.scheduler_id}[/bold green] "
        f"polling every {poll_interval or settings.poll_interval}s "
        f"({len(services.registry)} handler(s))"
    )
    scheduler.start()
    console.print(f"[dim]Stopped after {scheduler.stats.passes} pass(es).[/dim]")


@app.command("handlers")
def list_handlers(
    handlers: list[str] | None = typer.Option(None, "--handlers", "-H", help=_HANDLERS_HELP),
    demo: bool = typer.Option(False, "--demo", help="Register the built-in demo handlers"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List registered retry handlers."""
    load_handler_modules(handlers)
    registry = get_default_registry()
    if demo:
        register_builtin_handlers(registry)
    output_items(registry.list_with_metadata(), as_json=json_out, title="Retry Handlers")
