"""Site management commands."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from garden.core.config import GardenSecrets
from garden.core.crypto import SecretCipher
from garden.errors import ConfigurationError

from . import open_database

console = Console()
app = typer.Typer(help="Manage sites")


@app.command("add")
def add_site(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Display name"),
    domain: str = typer.Argument(..., help="Domain the script logs into, e.g. example.com"),
) -> None:
    """Register a new site."""
    database = open_database(ctx)
    try:
        site = database.add_site(name, domain.strip())
    except ValueError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1) from e
    console.print(f"[green]✅ Added site {site.id}[/green] {site.name} ({site.domain})")


@app.command("credentials")
def set_credentials(
    ctx: typer.Context,
    site_id: int = typer.Argument(..., help="Id of the site"),
    username: str = typer.Option(..., "--username", "-u", prompt=True),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
) -> None:
    """Store the site's username and password, encrypted."""
    database = open_database(ctx)
    if database.get_site(site_id) is None:
        console.print(f"[red]❌ Site {site_id} not found.[/red]")
        raise typer.Exit(1)

    key = GardenSecrets().enc_key_base64
    try:
        cipher = SecretCipher.from_base64(key.get_secret_value() if key else None)
    except ConfigurationError as e:
        console.print(f"[red]❌ {e}[/red]")
        console.print("Generate one with [bold]garden keygen[/bold].")
        raise typer.Exit(1) from e

    database.set_credentials(
        site_id,
        cipher.encrypt(username) if username else None,
        cipher.encrypt(password) if password else None,
    )
    console.print(f"[green]✅ Credentials saved[/green] for site {site_id}")


@app.command("list")
def list_sites(ctx: typer.Context) -> None:
    """List registered sites and their last result."""
    sites = open_database(ctx).list_sites()
    if not sites:
        console.print("No sites yet. Add one with [bold]garden site add[/bold].")
        return

    table = Table(title="Sites")
    table.add_column("Id", justify="right")
    table.add_column("Name")
    table.add_column("Domain")
    table.add_column("Credentials")
    table.add_column("Last status")
    table.add_column("Last run")
    for site in sites:
        table.add_row(
            str(site.id),
            site.name,
            site.domain,
            "yes" if site.username_enc or site.password_enc else "no",
            site.last_status or "-",
            site.last_run_at.strftime("%Y-%m-%d %H:%M") if site.last_run_at else "-",
        )
    console.print(table)
