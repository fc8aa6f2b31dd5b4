"""
Root Typer application for the retryline CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from retryline import __version__
from retryline.core.logging import configure_logging
from retryline.core.settings import get_settings

app = Typer(
    name="retryline",
    help="retryline: policy-driven retry orchestration.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"retryline {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="Override RETRYLINE_LOG_LEVEL."),
) -> None:
    """retryline CLI: manage retry policies, chains, and the scheduler."""
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        json_format=settings.json_logs,
        service=settings.service_name,
        to_stderr=True,
    )


# ── Sub-command registration ─────────────────────────────────────────────

from retryline.cli.db import app as db_app  # noqa: E402
from retryline.cli.ingest import ingest  # noqa: E402
from retryline.cli.policies import app as policies_app  # noqa: E402
from retryline.cli.records import app as records_app  # noqa: E402
from retryline.cli.scheduler import app as scheduler_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(policies_app, name="policies", help="Retry policy management.")
app.add_typer(records_app, name="records", help="Retry chain inspection.")
app.add_typer(scheduler_app, name="scheduler", help="Dispatch due retries.")
app.command("ingest")(ingest)
