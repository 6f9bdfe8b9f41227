"""
Shared helpers for command modules: vault lookup and error reporting.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

import typer
from rich import print
from rich.markup import escape

from core.errors import VaultError
from core.vault.manager import Vault


@contextmanager
def handle_errors(action: Optional[str] = None) -> Iterator[None]:
    """
    Report engine errors and exit with their class code.

    Args:
        action: Optional label printed before the message (e.g. "Error adding secret")
    """
    try:
        yield
    except VaultError as e:
        prefix = f"{action}: " if action else ""
        print(f"[red]❌ {escape(prefix + str(e))}[/red]")
        raise typer.Exit(code=e.exit_code)


def vault_root(ctx: typer.Context) -> Optional[str]:
    return (ctx.obj or {}).get("vault")


@contextmanager
def opened_vault(ctx: typer.Context, action: Optional[str] = None) -> Iterator[Vault]:
    with handle_errors(action):
        with Vault.open(vault_root(ctx)) as vault:
            yield vault
