import typer
from rich import print
from rich.markup import escape

from cli.common import handle_errors, vault_root
from core.vault.manager import init_vault


def init_vault_cmd(
    ctx: typer.Context,
    key_id: str = typer.Argument(..., help="Fingerprint (or unique prefix) of the encryption key"),
):
    """
    Init a new vault in the vault directory, bound to a validated key.
    """
    with handle_errors("Failed to create vault"):
        print("[blue]🔐 Creating new vault...[/blue]")
        identity = init_vault(vault_root(ctx), key_id)

    print(f"[green]✅ Vault initialized with key:[/green] {identity.key_id}")
    print(f"[dim]{escape(identity.vault_root)}[/dim]")
