"""Run a site's script from the command line."""

from __future__ import annotations

import asyncio

import typer
from playwright.async_api import Error as PlaywrightError
from rich.console import Console

from garden.errors import GardenError
from garden.server import GardenRuntime

from . import load_config

console = Console()


def run_command(
    ctx: typer.Context,
    site_id: int = typer.Argument(..., help="Id of the site to run"),
) -> None:
    """Run the latest script of a site and wait for it to finish."""
    runtime = GardenRuntime.create(load_config(ctx))

    try:
        run = asyncio.run(runtime.runner.run_site(site_id))
    except (GardenError, PlaywrightError) as e:
        console.print(f"\n[red]❌ Run failed:[/red] {e}")
        raise typer.Exit(1) from e

    console.print(f"\n[green]✅ Run {run.id} succeeded[/green] in {run.duration_ms}ms")
