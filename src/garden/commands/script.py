"""Script commands."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from garden.core.script import Script, parse_script
from garden.errors import FormatError

from . import open_database

console = Console()
app = typer.Typer(help="Check and upload recorded scripts")


def _read_script(path: Path) -> tuple[str, Script]:
    content = path.read_text(encoding="utf-8")
    try:
        return content, parse_script(content)
    except FormatError as e:
        console.print(f"[red]❌ {path}: {e}[/red]")
        raise typer.Exit(1) from e


@app.command("check")
def check_script(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Script JSON file"),
) -> None:
    """Validate a script file without storing it."""
    _, script = _read_script(path)
    console.print(
        f"[green]✅ {path.name} is valid[/green]: {len(script.steps)} steps, "
        f"{len(script.secrets)} secrets, {script.captcha_count} captcha steps"
    )
    if not script.starts_with_goto:
        console.print("[dim]No leading goto; runs will start at the site's domain.[/dim]")


@app.command("upload")
def upload_script(
    ctx: typer.Context,
    site_id: int = typer.Argument(..., help="Id of the site"),
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Script JSON file"),
) -> None:
    """Store a script as the site's latest."""
    content, script = _read_script(path)
    database = open_database(ctx)
    if database.get_site(site_id) is None:
        console.print(f"[red]❌ Site {site_id} not found.[/red]")
        raise typer.Exit(1)

    record = database.add_script(site_id, content)
    console.print(f"[green]✅ Uploaded script {record.id}[/green] ({len(script.steps)} steps) for site {site_id}")
