"""Run inspection commands."""

from __future__ import annotations

import json

import typer
from rich.console import Console
from rich.table import Table

from . import open_database

console = Console()
app = typer.Typer(help="Inspect runs")

_STATUS_STYLES = {"success": "green", "failed": "red", "running": "yellow"}


@app.command("show")
def show_run(
    ctx: typer.Context,
    run_id: int = typer.Argument(..., help="Id of the run"),
    events: bool = typer.Option(False, "--events", "-e", help="Also print the event log"),
) -> None:
    """Show a run with its captcha traces."""
    database = open_database(ctx)
    run = database.get_run(run_id)
    if run is None:
        console.print(f"[red]❌ Run {run_id} not found.[/red]")
        raise typer.Exit(1)

    style = _STATUS_STYLES.get(run.status, "white")
    console.print(f"Run [bold]{run.id}[/bold] for site {run.site_id}: [{style}]{run.status}[/{style}]")
    if run.duration_ms is not None:
        console.print(f"Duration: {run.duration_ms}ms")
    if run.error:
        console.print(f"Error: {run.error}", highlight=False)
    shot = database.get_screenshot(run_id)
    if shot is not None:
        console.print(f"Screenshot: {shot.width}x{shot.height} {shot.mime_type}")

    traces = database.list_captcha_traces(run_id)
    if traces:
        table = Table(title="Captcha traces")
        table.add_column("Attempt", justify="right")
        table.add_column("Seq", justify="right")
        table.add_column("Model")
        table.add_column("Error")
        for trace in traces:
            table.add_row(str(trace.attempt), str(trace.sequence), trace.model, trace.error or "-")
        console.print(table)

    if events:
        for record in database.list_run_events(run_id):
            payload = json.loads(record.payload)
            payload.pop("type", None)
            payload.pop("runId", None)
            console.print(f"[cyan]{record.type}[/cyan] {json.dumps(payload)}", highlight=False)
