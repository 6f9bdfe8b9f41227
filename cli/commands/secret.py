"""
Secret Command - Manage small named values stored encrypted in the vault.
"""

from typing import Optional

import typer
from rich import print
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cli.common import opened_vault
from core.vault.secrets import SecretStore, parse_tags

app = typer.Typer(no_args_is_help=True)

TAGS_HELP = "Optional tags for the secret. Comma-separated."


@app.command("add")
def add_secret(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the secret"),
    value: str = typer.Argument(..., help="Value of the secret"),
    tags: str = typer.Option("", "--tags", "-t", help=TAGS_HELP),
):
    """
    Add a new secret to the vault.
    """
    with opened_vault(ctx, "Error adding secret") as vault:
        SecretStore(vault).add(name, value, parse_tags(tags))

    print(f"[green]✅ Secret '{escape(name)}' successfully added[/green]")


@app.command("list")
def list_secrets(
    ctx: typer.Context,
    tags: str = typer.Option("", "--tags", "-t", help="Only show secrets with any of these tags"),
):
    """
    List secrets in the vault (values stay encrypted).
    """
    with opened_vault(ctx, "Error listing secrets") as vault:
        entries = SecretStore(vault).list(parse_tags(tags))

    if not entries:
        print("[yellow]No secrets found in vault[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Name")
    table.add_column("Tags")

    for entry in entries:
        table.add_row(escape(entry.name), escape(", ".join(sorted(entry.tags))))

    Console().print(table)


@app.command("update")
def update_secret(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the secret to update"),
    value: str = typer.Argument(..., help="New value for the secret"),
    tags: Optional[str] = typer.Option(
        None, "--tags", "-t", help=TAGS_HELP + " Replaces the current tags."
    ),
):
    """
    Update an existing secret in the vault.
    """
    with opened_vault(ctx, "Error updating secret") as vault:
        SecretStore(vault).update(name, value, None if tags is None else parse_tags(tags))

    print(f"[green]✅ Secret '{escape(name)}' successfully updated[/green]")


@app.command("remove")
def remove_secret(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the secret to remove"),
):
    """
    Remove a secret from the vault.
    """
    with opened_vault(ctx, "Error removing secret") as vault:
        SecretStore(vault).remove(name)

    print(f"[green]✅ Secret '{escape(name)}' successfully removed from vault[/green]")


@app.command("show")
def show_secret(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the secret to show"),
):
    """
    Decrypt and print one secret.
    """
    with opened_vault(ctx, "Error showing secret") as vault:
        value = SecretStore(vault).show(name)

    # Plain echo: the value must not be interpreted as markup
    typer.echo(value)
