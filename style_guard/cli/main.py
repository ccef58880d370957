"""
CLI interface for Style Guard.

Provides command-line access to normalization, review and usage reporting.
"""

import logging
import sqlite3
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from style_guard.config.loader import ServiceConfig, load_service_config, load_settings_blob
from style_guard.core.errors import GatewayError, ValidationError
from style_guard.core.normalizer import FieldInput, Normalizer
from style_guard.sdk.completion_client import CompletionClient
from style_guard.storage.repository import initialize_schema, save_org_settings

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _service_config(ctx: typer.Context) -> ServiceConfig:
    return ctx.obj["config"]


def _build_normalizer(config: ServiceConfig, offline: bool = False) -> Normalizer:
    """Create a normalizer wired to the configured database.

    Review and reporting commands run offline, without a completion client.
    """
    client = None if offline else CompletionClient.from_config(config)
    return Normalizer(client, db_path=config.db_path)


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {message}")
    sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to service configuration YAML"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging"
    )
):
    """Style Guard CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    try:
        config = load_service_config(config_path)
    except (FileNotFoundError, yaml.YAMLError, ValueError) as e:
        _fail(f"Invalid configuration: {e}")
    ctx.obj = {"config": config}

    if ctx.invoked_subcommand is None:
        console.print("Style Guard - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the Style Guard database."""
    try:
        initialize_schema(_service_config(ctx).db_path)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except sqlite3.Error as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def settings(
    ctx: typer.Context,
    org_id: str = typer.Argument(..., help="Organization identifier"),
    settings_file: str = typer.Argument(..., help="YAML file with the organization settings")
):
    """Store an organization's settings blob."""
    try:
        blob = load_settings_blob(settings_file)
        save_org_settings(org_id, blob, _service_config(ctx).db_path)
    except (FileNotFoundError, yaml.YAMLError, ValueError, sqlite3.Error) as e:
        _fail(str(e))
    console.print(f"[green]✓[/] Settings stored for {org_id}")


@app.command()
def normalize(
    ctx: typer.Context,
    org_id: str = typer.Argument(..., help="Organization identifier"),
    user_id: str = typer.Argument(..., help="Requesting user"),
    field_name: str = typer.Argument(..., help="Field to normalize, e.g. defect_description"),
    text: str = typer.Argument(..., help="Text to normalize"),
    inspection_id: Optional[str] = typer.Option(None, "--inspection-id"),
    inspection_item_id: Optional[str] = typer.Option(None, "--inspection-item-id"),
    defect_id: Optional[str] = typer.Option(None, "--defect-id"),
    asset_type: Optional[str] = typer.Option(None, "--asset-type", help="Asset type hint")
):
    """Normalize one field and store the suggestion for review."""
    try:
        normalizer = _build_normalizer(_service_config(ctx))
        style = normalizer.load_org_style(org_id)
        suggestion = normalizer.normalize_field(
            FieldInput(
                field_name=field_name,
                original_text=text,
                inspection_id=inspection_id,
                inspection_item_id=inspection_item_id,
                defect_id=defect_id,
                asset_type=asset_type
            ),
            style,
            org_id,
            user_id
        )
    except GatewayError as e:
        _fail(f"{e} (the service may be busy, try again)")
    except (ValidationError, ValueError, sqlite3.Error) as e:
        _fail(str(e))

    console.print(f"\n[bold]Suggestion {suggestion.id}[/bold] ({suggestion.status.value})")
    console.print(f"[dim]Original:[/] {suggestion.original_text}")
    console.print(f"[green]Suggested:[/] {suggestion.normalized_text}")
    console.print(f"[dim]Changes:[/] {suggestion.diff_summary}")
    console.print(
        f"[dim]Tokens:[/] {suggestion.input_tokens} in / {suggestion.output_tokens} out"
    )


@app.command()
def accept(
    ctx: typer.Context,
    suggestion_id: str = typer.Argument(...),
    org_id: str = typer.Argument(...),
    user_id: str = typer.Argument(..., help="Reviewing user")
):
    """Accept a pending suggestion and print the text to apply."""
    try:
        normalizer = _build_normalizer(_service_config(ctx), offline=True)
        accepted = normalizer.accept(suggestion_id, org_id, user_id)
    except (ValidationError, ValueError, sqlite3.Error) as e:
        _fail(str(e))
    console.print(f"[green]✓[/] Accepted ({accepted.field_name.value})")
    console.print(accepted.normalized_text)


@app.command()
def reject(
    ctx: typer.Context,
    suggestion_id: str = typer.Argument(...),
    org_id: str = typer.Argument(...),
    user_id: str = typer.Argument(..., help="Reviewing user"),
    reason: str = typer.Option(..., "--reason", "-r", help="Why the suggestion is rejected")
):
    """Reject a pending suggestion; the original text stays in place."""
    try:
        normalizer = _build_normalizer(_service_config(ctx), offline=True)
        normalizer.reject(suggestion_id, org_id, user_id, reason)
    except (ValidationError, ValueError, sqlite3.Error) as e:
        _fail(str(e))
    console.print(f"[green]✓[/] Rejected {suggestion_id}")


@app.command()
def history(
    ctx: typer.Context,
    org_id: str = typer.Argument(...),
    status: Optional[str] = typer.Option(None, "--status", "-s"),
    field_name: Optional[str] = typer.Option(None, "--field", "-f"),
    requested_by: Optional[str] = typer.Option(None, "--requested-by"),
    limit: int = typer.Option(50, "--limit", "-n"),
    sort_by: str = typer.Option(
        "created_at", "--sort-by", help="created_at, field_name or status"
    ),
    sort_direction: str = typer.Option("desc", "--sort-dir", help="asc or desc")
):
    """Show an organization's normalization history."""
    try:
        normalizer = _build_normalizer(_service_config(ctx), offline=True)
        suggestions = normalizer.history(
            org_id,
            status=status,
            field_name=field_name,
            requested_by=requested_by,
            limit=limit,
            sort_by=sort_by,
            sort_direction=sort_direction
        )
    except (ValueError, sqlite3.Error) as e:
        _fail(str(e))

    if not suggestions:
        console.print("\n[dim]No normalization history found.[/]")
        return

    table = Table(title=f"Normalization history for {org_id}")
    table.add_column("ID")
    table.add_column("Field")
    table.add_column("Status")
    table.add_column("Requested by")
    table.add_column("Created")
    table.add_column("Summary")
    for suggestion in suggestions:
        table.add_row(
            suggestion.id,
            suggestion.field_name.value,
            suggestion.status.value,
            suggestion.requested_by,
            suggestion.created_at.strftime("%Y-%m-%d %H:%M"),
            suggestion.diff_summary or ""
        )
    console.print(table)


@app.command()
def usage(
    ctx: typer.Context,
    org_id: str = typer.Argument(...)
):
    """Show token usage against the organization's monthly budget."""
    try:
        normalizer = _build_normalizer(_service_config(ctx), offline=True)
        style = normalizer.load_org_style(org_id)
        report = normalizer.usage(org_id, style)
    except (ValidationError, ValueError, sqlite3.Error) as e:
        _fail(str(e))

    console.print(f"\n[bold]Usage for {org_id}[/bold] ({report.current_month})")
    console.print(
        f"Tokens used: {report.tokens_used:,} / {report.monthly_budget:,} "
        f"({report.percentage_used}%)"
    )
    console.print(f"Remaining: {report.budget_remaining:,}")

    if report.history:
        table = Table(title="Recent months")
        table.add_column("Month")
        table.add_column("Input tokens", justify="right")
        table.add_column("Output tokens", justify="right")
        table.add_column("Requests", justify="right")
        table.add_column("Est. cost", justify="right")
        for entry in report.history:
            table.add_row(
                entry.month_year,
                f"{entry.input_tokens:,}",
                f"{entry.output_tokens:,}",
                str(entry.request_count),
                _format_currency(entry.estimated_cost)
            )
        console.print(table)


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.4f}"


if __name__ == "__main__":
    app()
