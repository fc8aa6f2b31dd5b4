"""
CLI ``retryline policies``: inspect and load retry policies.
"""

from __future__ import annotations

import typer

from retryline.cli.utils import fail, get_connection, output_item, output_items, policy_source
from retryline.core.errors import RetrylineError
from retryline.retry.policies import PolicyCache, SqlPolicySource, YamlPolicySource

app = typer.Typer(no_args_is_help=True)

_COLUMNS = [
    "key",
    "max_retry_count",
    "retry_interval_minutes",
    "start_first_retry_after_minutes",
]


@app.command("list")
def list_policies(
    database: str | None = typer.Option(None, "--database", "-d"),
    policy_file: str | None = typer.Option(None, "--policy-file", "-p", help="YAML policy file"),
    include_inactive: bool = typer.Option(False, "--all", help="Include inactive policies"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List configured retry policies."""
    source = policy_source(get_connection(database), policy_file)
    try:
        if include_inactive:
            items = sorted(source.load_policies(), key=lambda p: p.key)
        else:
            items = PolicyCache(source).policies()
    except RetrylineError as e:
        fail(e.message)
    output_items(items, as_json=json_out, title="Retry Policies", columns=_COLUMNS + (["is_active"] if include_inactive else []))


@app.command()
def resolve(
    process_name: str = typer.Argument(..., help="Process name"),
    method_name: str | None = typer.Argument(None, help="Method name"),
    database: str | None = typer.Option(None, "--database", "-d"),
    policy_file: str | None = typer.Option(None, "--policy-file", "-p"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show which policy applies to a process (and method)."""
    cache = PolicyCache(policy_source(get_connection(database), policy_file))
    try:
        policy = cache.resolve(process_name, method_name)
    except RetrylineError as e:
        fail(e.message)
    if policy is None:
        fail(f"No active retry policy for {process_name!r}" + (f" / {method_name!r}" if method_name else ""))
    output_item(policy, as_json=json_out, title="Resolved Policy")


@app.command("import")
def import_policies(
    path: str = typer.Argument(..., help="YAML policy file"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Load policies from a YAML file into the retry_policies table."""
    try:
        policies = YamlPolicySource(path).load_policies()
    except (OSError, RetrylineError) as e:
        fail(f"Cannot read {path}: {e}")
    try:
        written = SqlPolicySource(get_connection(database)).save_policies(policies)
    except RetrylineError as e:
        fail(e.message)
    output_item({"imported": written, "source": path}, as_json=json_out, title="Policy Import")
