import time

import typer
from rich import print
from rich.markup import escape

from cli.common import opened_vault
from core.errors import EXIT_IO
from core.vault.audit import audit_vault

app = typer.Typer(no_args_is_help=True, help="Vault status and consistency checks")


@app.command("status")
def status(ctx: typer.Context):
    """
    Show the identity and content counts of the vault.
    """
    with opened_vault(ctx) as vault:
        info = vault.status()

    created = time.strftime("%Y-%m-%d %H:%M", time.localtime(info["created_at"]))
    print("[blue]dark-matter Vault Status[/blue]")
    print(f"[green]Root:[/green] {escape(info['root'])}")
    print(f"[green]Key:[/green] {info['key_id']}")
    print(f"[green]Created:[/green] {created}")
    print(f"[green]Layout version:[/green] {info['layout_version']}")
    print(f"[green]Files:[/green] {info['file_count']} ({info['version_count']} versions)")
    print(f"[green]Secrets:[/green] {info['secret_count']}")


@app.command("audit")
def audit(
    ctx: typer.Context,
    repair: bool = typer.Option(
        False, "--repair", help="Delete orphaned files and restore interrupted removals"
    ),
):
    """
    Check that every ciphertext blob has a version row and vice versa.
    """
    with opened_vault(ctx) as vault:
        report = audit_vault(vault, repair=repair)

    for action in report.repaired:
        print(f"[blue]🔧 {escape(action)}[/blue]")

    if report.clean:
        print("[green]✅ Vault is consistent[/green]")
        return

    for blob_id in report.orphan_blobs:
        print(f"[yellow]⚠️ Orphan blob without version row: {blob_id}[/yellow]")
    for record in report.missing_blobs:
        print(
            f"[red]❌ Missing blob for '{escape(record.name)}' version {record.version}"
            f" ({record.blob_id})[/red]"
        )
    for path in report.leftovers:
        print(f"[yellow]⚠️ Leftover from an interrupted command: {escape(path.name)}[/yellow]")

    if not repair:
        print("Run 'dark-matter vault audit --repair' to clean up.")
    raise typer.Exit(code=EXIT_IO)
