"""CLI command implementations."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from garden.core.config import GardenConfig
from garden.errors import ConfigurationError
from garden.storage import GardenDatabase

console = Console()


def load_config(ctx: typer.Context) -> GardenConfig:
    """Load the configuration selected with ``--config``, exiting on errors."""
    path: Path | None = ctx.obj if isinstance(ctx.obj, Path) else None
    try:
        return GardenConfig.load_config(path)
    except ConfigurationError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1) from e


def open_database(ctx: typer.Context) -> GardenDatabase:
    return GardenDatabase.from_config(load_config(ctx).storage)
