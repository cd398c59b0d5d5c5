"""Main CLI application for Garden."""

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from . import __version__

console = Console()
app = typer.Typer(
    name="garden",
    help="Replay recorded site logins in a real browser, solving captchas on the way",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Show version information."""
    if value:
        console.print(f"Garden v{__version__}")
        console.print("Recorded login runner")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # Keep third-party chatter at warning level unless asked
    for name in ("httpx", "httpcore", "openai", "anthropic", "sqlalchemy.engine"):
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version information",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to garden.yaml (defaults to ./garden.yaml)",
        dir_okay=False,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log debug output"),
) -> None:
    """
    Garden: keeps site sessions alive by replaying recorded logins.

    Scripts come from the recorder; credentials are stored encrypted and only
    substituted into the browser at run time.
    """
    configure_logging(verbose)
    ctx.obj = config


# Import and register commands after app creation to avoid circular imports
def register_commands() -> None:
    """Register CLI commands."""
    from .commands import runs, script, site
    from .commands.keygen import keygen_command
    from .commands.run import run_command
    from .commands.serve import serve_command

    app.command("serve", help="Start the run server")(serve_command)
    app.command("run", help="Run a site's latest script now")(run_command)
    app.command("keygen", help="Generate a credential encryption key")(keygen_command)
    app.add_typer(site.app, name="site")
    app.add_typer(script.app, name="script")
    app.add_typer(runs.app, name="runs")


# Register commands when module is imported
register_commands()


if __name__ == "__main__":
    app()
