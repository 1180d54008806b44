"""YTB CLI: all commands."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated

import typer
from rich import print as rprint
from rich.table import Table

from ytb.auth import AuthError, TokenManager, is_usable
from ytb.batch import BatchFileError, BatchProcessor, load_batch
from ytb.models import BatchReport, CreatedTask, Success, TaskBatch, TaskPatch, TokenRecord, UpdatedTask
from ytb.providers.base import TrackerClient
from ytb.providers.yandex import YandexTrackerClient
from ytb.settings import CONFIG_PATH, YtbSettings, get_settings, write_config_template
from ytb.store import CredentialStore

app = typer.Typer(help="ytb: apply batches of task changes to Yandex Tracker", no_args_is_help=True)

ConfigOpt = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config.toml (default: ./config.toml)"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def get_token_manager(settings: YtbSettings) -> TokenManager:
    return TokenManager(settings, CredentialStore(settings.token_path))


def get_client(settings: YtbSettings, token: TokenRecord) -> TrackerClient:
    return YandexTrackerClient(token.access_token, settings.organization_id or "", settings.api_base_url)


def _obtain_token(settings: YtbSettings, force: bool = False) -> TokenRecord:
    try:
        return get_token_manager(settings).obtain_token(force=force)
    except AuthError as exc:
        rprint(f"[red]Authorization failed: {exc}[/red]")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Report rendering
# ---------------------------------------------------------------------------


def render_report(report: BatchReport) -> Table:
    table = Table(title="Batch Results")
    table.add_column("#", style="dim")
    table.add_column("Op")
    table.add_column("Item", style="cyan")
    table.add_column("Result")

    for outcome in report.outcomes:
        if isinstance(outcome.result, Success):
            status = f"[green]✓[/green] {outcome.result.issue_key}"
        else:
            status = f"[red]✗ {outcome.result.kind.value}[/red] {outcome.result.message}"
        table.add_row(str(outcome.index + 1), outcome.kind, outcome.reference, status)

    return table


def _print_summary(report: BatchReport) -> None:
    rprint(f"[bold]{report.succeeded}[/bold] succeeded, [bold]{report.failed}[/bold] failed")
    for kind, count in report.failures_by_kind().items():
        rprint(f"  {kind.value}: {count}")


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def example_batch() -> TaskBatch:
    return TaskBatch(
        created=[
            CreatedTask(
                queue="QUEUE",
                summary="A brief summary of the task",
                description="A detailed description of the task (optional)",
                type="task",
                priority="normal",
                assignee="login-of-assignee",
                subtasks=[CreatedTask(summary="A subtask, created under its parent")],
            ),
            CreatedTask(summary="Task that goes to default_queue"),
        ],
        updated=[
            UpdatedTask(issue_id="QUEUE-1", mut_task=TaskPatch(summary="New summary", priority="critical")),
        ],
        deleted=["QUEUE-2"],
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("run-tasks")
def run_tasks(
    config: ConfigOpt = None,
    tasks: Annotated[
        Path | None,
        typer.Option("--tasks", "-t", help="Batch file (default: tasks_path setting, tasks.json)"),
    ] = None,
) -> None:
    """Apply the batch file: create, update and delete tasks."""
    settings = get_settings(config)

    try:
        batch = load_batch(tasks or settings.tasks_path)
    except BatchFileError as exc:
        rprint(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    token = _obtain_token(settings)
    client = get_client(settings, token)

    processor = BatchProcessor(
        client,
        default_queue=settings.default_queue,
        allow_delete=settings.allow_delete,
        request_delay=settings.request_delay,
    )
    report = processor.process(batch)

    rprint(render_report(report))
    _print_summary(report)

    if report.has_failures:
        raise typer.Exit(1)


@app.command("login")
def login(config: ConfigOpt = None) -> None:
    """Run the OAuth flow and store a new token, even if the current one is valid."""
    settings = get_settings(config)
    token = _obtain_token(settings, force=True)
    rprint(f"[green]✓[/green] Token saved to {settings.token_path}")
    if token.expires_at:
        rprint(f"  Expires {token.expires_at:%Y-%m-%d %H:%M} UTC")


@app.command("token-status")
def token_status(
    config: ConfigOpt = None,
    token: Annotated[
        Path | None,
        typer.Option("--token", help="Token file (default: token_path setting, token.json)"),
    ] = None,
) -> None:
    """Show the stored token's age and expiry (never prints the token itself)."""
    token_path = token or get_settings(config).token_path
    record = CredentialStore(token_path).load()
    if record is None:
        rprint(f"[yellow]No usable token in {token_path}.[/yellow] Run: ytb login")
        raise typer.Exit(1)

    now = datetime.now(timezone.utc)
    table = Table(title="Stored Token")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("File", str(token_path))
    table.add_row("Obtained", f"{record.obtained_at:%Y-%m-%d %H:%M} UTC")
    table.add_row("Expires", f"{record.expires_at:%Y-%m-%d %H:%M} UTC" if record.expires_at else "unknown")
    table.add_row("Usable", "[green]yes[/green]" if is_usable(record, now) else "[red]no (expired)[/red]")
    rprint(table)


@app.command("template-tasks")
def template_tasks(
    output: Annotated[Path, typer.Option("--output", "-o", help="Where to write the example batch")] = Path(
        "tasks.json"
    ),
    force: Annotated[bool, typer.Option("--force", help="Overwrite an existing file")] = False,
) -> None:
    """Write an example batch file."""
    if output.exists() and not force:
        rprint(f"[yellow]{output} already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(example_batch().model_dump_json(indent=2, exclude_unset=True))
    rprint(f"[green]✓[/green] Wrote {output}")


@app.command("template-config")
def template_config(
    output: Annotated[Path, typer.Option("--output", "-o", help="Where to write the example config")] = CONFIG_PATH,
    force: Annotated[bool, typer.Option("--force", help="Overwrite an existing file")] = False,
) -> None:
    """Write an example config.toml."""
    if not write_config_template(output, force=force):
        rprint(f"[yellow]{output} already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    rprint(f"[green]✓[/green] Wrote {output}")
