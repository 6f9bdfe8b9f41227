"""
Keys Command - Generate keys and diagnose whether a key can be bound to a vault.
"""

import typer
from rich import print
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cli.common import handle_errors
from core.encryption.factory import get_gateway
from core.encryption.gateway import KeyInfo, KeyStatus
from core.encryption.keyring import KeyringGateway
from core.errors import EXIT_KEY
from core.vault.gate import KeyValidationGate

app = typer.Typer(no_args_is_help=True)


def _yes_no(flag: bool) -> str:
    return "✅ Yes" if flag else "❌ No"


def _print_key(key: KeyInfo) -> None:
    print("\nKey capabilities:")
    print(f"  - Encryption: {_yes_no(key.can_encrypt)}")
    print(f"  - Signing: {_yes_no(key.can_sign)}")

    print("\nDetails:")
    print(f"  - Fingerprint: {key.fingerprint}")
    print(f"  - Algorithm: {key.algorithm}")
    print(f"  - Expires: {key.expires_at:%Y-%m-%d}" if key.expires_at else "  - Expires: never")
    print(f"  - Revoked: {_yes_no(key.revoked)}")

    print(f"\nUser IDs ({len(key.uids)}):")
    for i, (name, email) in enumerate(key.uids, start=1):
        print(f"  ID #{i}")
        print(f"    - Name: {escape(name or 'Unknown')}")
        print(f"    - Email: {escape(email or 'Unknown')}")


@app.command("validate")
def validate_key(
    key_hash: str = typer.Argument(..., help="Fingerprint (or unique prefix) of the key to validate"),
):
    """
    Validate a key for use with dark-matter. Nothing is modified.
    """
    with handle_errors():
        gate = KeyValidationGate(get_gateway())
        report = gate.validate(key_hash)

    print(f"[blue]Status:[/blue] {report.status.value}")

    if report.status == KeyStatus.NOT_FOUND:
        print(f"[red]❌ Key not found: {escape(key_hash)}[/red]")
        print("\nDiagnosis:")
        print(f"1. Check the fingerprint: {escape(key_hash)}")
        print("2. Check available keys:")
        print("   $ dark-matter keys list")
        print("3. Maybe the key file is not in the keyring directory (DM_KEYRING_DIR)")
        raise typer.Exit(code=EXIT_KEY)

    if report.status == KeyStatus.AMBIGUOUS:
        print(f"[red]❌ '{escape(key_hash)}' matches more than one key:[/red]")
        for key in report.matches:
            print(f"  - {key.fingerprint}")
        print("Use a longer prefix or the full fingerprint.")
        raise typer.Exit(code=EXIT_KEY)

    key = report.key
    print("[green]✅ Key found in keyring[/green]")
    _print_key(key)

    if report.status == KeyStatus.UNUSABLE:
        print(f"\n[red]❌ Problem: {escape(report.reason)}[/red]")
        print("   Solution: use a key with encryption capability that is neither expired nor revoked")
        raise typer.Exit(code=EXIT_KEY)

    print("\nEncryption testing:")
    failure = gate.self_test(key.fingerprint)
    if failure:
        print(f"  [red]❌ Encryption failed: {escape(failure)}[/red]")
        raise typer.Exit(code=EXIT_KEY)
    print("  ✅ Encryption successful")

    print("\n[green]✅ Key is suitable for use with dark-matter[/green]")


@app.command("generate")
def generate_key(
    name: str = typer.Option("", "--name", help="Name stored with the key"),
    email: str = typer.Option("", "--email", help="Email stored with the key"),
    bits: int = typer.Option(3072, "--bits", min=2048, help="RSA key size"),
):
    """
    Generate a new RSA encryption key in the keyring.
    """
    with handle_errors("Error generating key"):
        gateway = get_gateway()
        if not isinstance(gateway, KeyringGateway):
            print("[red]❌ Key generation is only supported by the keyring backend[/red]")
            raise typer.Exit(code=EXIT_KEY)
        print("[blue]🔑 Generating key...[/blue]")
        key = gateway.generate_key(name, email, bits)

    print(f"[green]✅ Key generated:[/green] {key.fingerprint}")
    print(f"[dim]{escape(str(gateway.keyring_dir))}[/dim]")
    print(f"Bind it to a new vault with: dark-matter init {key.fingerprint[:16]}")


@app.command("list")
def list_keys():
    """
    List the keys available to the crypto backend.
    """
    with handle_errors():
        keys = get_gateway().list_keys()

    if not keys:
        print("[yellow]No keys found in keyring[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Fingerprint", no_wrap=True)
    table.add_column("Algorithm")
    table.add_column("Usable")

    for key in keys:
        reason = key.unusable_reason()
        table.add_row(key.fingerprint[:16], key.algorithm, escape(reason) if reason else "✅")

    Console().print(table)
