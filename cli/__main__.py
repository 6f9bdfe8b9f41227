"""
dark-matter Command Line Interface - Main entry point.
"""
from importlib.metadata import PackageNotFoundError, version as package_version
from typing import Optional

import typer
from rich import print

from cli.commands import config, file, init, keys, secret, vault
from core.utils.console import setup_logging

app = typer.Typer(
    name="dark-matter",
    help="Simple vault CLI utility: encrypted files and secrets bound to one key",
    no_args_is_help=True,
)

# Register command modules
app.command("init", help="Init a new vault bound to a key")(init.init_vault_cmd)
app.add_typer(file.app, name="file", help="File management operations")
app.add_typer(secret.app, name="secret", help="Secret management operations")
app.add_typer(keys.app, name="keys", help="Key validation and diagnostics")
app.add_typer(vault.app, name="vault", help="Vault status and consistency checks")
app.add_typer(config.app, name="config", help="Configure dark-matter settings")


@app.callback()
def main(
    ctx: typer.Context,
    vault_path: Optional[str] = typer.Option(
        None, "--vault", "-C", help="Vault directory (defaults to DM_VAULT_ROOT or '.')"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """
    🌑 dark-matter - encrypted files and secrets in a local vault

    Every file version and secret is encrypted for the key bound at 'init';
    history and metadata live in a local SQLite store next to the ciphertext.
    """
    setup_logging(verbose)
    ctx.obj = {"vault": vault_path}


@app.command("version")
def version():
    """
    Show dark-matter version information.
    """
    try:
        current = package_version("dark-matter")
    except PackageNotFoundError:
        current = "development"

    print(f"[blue]🌑 dark-matter[/blue] version [green]{current}[/green]")


if __name__ == "__main__":
    app()
