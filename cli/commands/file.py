"""
File Command - Add, version, export and remove files in the vault.
"""

import sys
import time
from typing import Optional

import questionary
import typer
from rich import print
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cli.common import opened_vault
from core.errors import DestinationExists
from core.vault.file_handler import (
    add_file,
    export_file,
    file_history,
    list_files,
    remove_file,
    update_file,
)

app = typer.Typer(no_args_is_help=True)


@app.command("add")
def add_cmd(
    ctx: typer.Context,
    filename: str = typer.Argument(..., help="Path to the file to add"),
    name: Optional[str] = typer.Option(
        None, "--name", "-n", help="Name in the vault (defaults to the absolute path)"
    ),
):
    """
    Encrypt a file and start tracking it.
    """
    with opened_vault(ctx, "Error adding file") as vault:
        file = add_file(vault, filename, name=name)

    print(f"[green]✅ File '{escape(file.name)}' successfully added to vault[/green]")


@app.command("list")
def list_cmd(ctx: typer.Context):
    """
    List all files in the vault.
    """
    with opened_vault(ctx) as vault:
        files = list_files(vault)

    if not files:
        print("[yellow]Vault is empty[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Name")
    table.add_column("Version", justify="right")
    table.add_column("Original path", style="dim")

    for file in files:
        table.add_row(escape(file.name), str(file.current_version), escape(file.original_path))

    Console().print(table)
    print(f"[green]Total: {len(files)} file(s)[/green]")


@app.command("update")
def update_cmd(
    ctx: typer.Context,
    filename: str = typer.Argument(..., help="Name or path of the tracked file"),
    source: Optional[str] = typer.Option(
        None, "--source", "-s", help="Read the new content from this path instead"
    ),
):
    """
    Store a new version of a tracked file.
    """
    with opened_vault(ctx, "Error updating file") as vault:
        record = update_file(vault, filename, source=source)

    print(
        f"[green]✅ File '{escape(record.name)}' successfully updated "
        f"to version {record.version}[/green]"
    )


@app.command("remove")
def remove_cmd(
    ctx: typer.Context,
    filename: str = typer.Argument(..., help="Name or path of the tracked file"),
):
    """
    Remove a file and all of its versions from the vault.
    """
    with opened_vault(ctx, "Error removing file") as vault:
        versions = remove_file(vault, filename)

    print(
        f"[green]✅ File '{escape(filename)}' successfully removed from vault "
        f"({len(versions)} version(s))[/green]"
    )


@app.command("history")
def history_cmd(
    ctx: typer.Context,
    filename: str = typer.Argument(..., help="Name or path of the tracked file"),
):
    """
    Show every stored version of a file.
    """
    with opened_vault(ctx) as vault:
        versions = file_history(vault, filename)

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Version", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Created")
    table.add_column("SHA256", style="dim")

    for record in versions:
        created = time.strftime("%Y-%m-%d %H:%M", time.localtime(record.created_at))
        table.add_row(str(record.version), f"{record.size:,} bytes", created, record.content_hash[:16])

    Console().print(table)


@app.command("export")
def export_cmd(
    ctx: typer.Context,
    filename: str = typer.Argument(..., help="Name or path of the tracked file"),
    relative: bool = typer.Option(
        False, "--relative", "-r", help="Export to the current directory"
    ),
    confirm: bool = typer.Option(
        False, "--yes", "-y", "--assumeYes", help="Overwrite the destination without asking"
    ),
    version: Optional[int] = typer.Option(
        None, "--version", help="Export this version instead of the current one", min=1
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Explicit destination path"
    ),
):
    """
    Decrypt a file from the vault back to disk.
    """
    with opened_vault(ctx, "Error exporting file") as vault:
        try:
            destination = export_file(
                vault, filename, version=version, relative=relative,
                assume_yes=confirm, output=output,
            )
        except DestinationExists as e:
            if not sys.stdin.isatty():
                raise
            overwrite = questionary.confirm(
                f"File '{e.path}' already exists. Overwrite?", default=False
            ).ask()
            if not overwrite:
                print("[yellow]Export canceled[/yellow]")
                return
            destination = export_file(
                vault, filename, version=version, relative=relative,
                assume_yes=True, output=output,
            )

    print(f"[green]✅ File '{escape(str(destination))}' exported[/green]")
