"""Generate an encryption key for stored credentials."""

from rich.console import Console

from garden.core.crypto import KEY_ENV_VAR, generate_key

console = Console()


def keygen_command() -> None:
    key = generate_key()
    console.print(f"[bold]{KEY_ENV_VAR}[/bold]={key}", highlight=False, soft_wrap=True)
    console.print("[dim]Keep this key safe; stored credentials cannot be read without it.[/dim]")
