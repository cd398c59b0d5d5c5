"""Run server command."""

from __future__ import annotations

import typer

from garden.server import GardenRuntime, serve

from . import load_config


def serve_command(
    ctx: typer.Context,
    host: str | None = typer.Option(None, "--host", help="Bind address (defaults to server.host)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port (defaults to server.port)"),
) -> None:
    config = load_config(ctx)
    serve(GardenRuntime.create(config), host=host, port=port)
