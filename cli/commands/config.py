"""
Config Command - Show and persist dark-matter settings.
"""
import typer
from rich import print
from rich.markup import escape
from core.config import Config, env_file as find_env_file
from core.utils import console
from pathlib import Path
import dotenv

app = typer.Typer(no_args_is_help=True)

SETTINGS = (
    "DM_VAULT_ROOT",
    "DM_DB_NAME",
    "DM_CRYPTO_BACKEND",
    "DM_KEYRING_DIR",
    "DM_VALIDATE_POLICY",
    "DM_LOG_FILE",
    "DM_LOG_LEVEL",
    "DM_KEY_PASSPHRASE",
)
VALIDATE_POLICIES = ("always", "init")


@app.command("show")
def show_config():
    """
    Display the current configuration.
    """
    print("[blue]Current Configuration:[/blue]")
    print(f"[green]Vault Root:[/green] {escape(Config.VAULT_ROOT)}")
    print(f"[green]Database:[/green] {Config.DB_NAME}")
    print(f"[green]Crypto Backend:[/green] {Config.CRYPTO_BACKEND}")
    print(f"[green]Validation Policy:[/green] {Config.VALIDATE_POLICY}")
    print(f"[green]Log File:[/green] {escape(Config.LOG_FILE or 'Not Set')}")
    print(f"[green]Log Level:[/green] {Config.LOG_LEVEL}")

    if Config.CRYPTO_BACKEND == "keyring":
        keyring_dir = Path(Config.KEYRING_DIR).expanduser()
        state = "Found" if keyring_dir.is_dir() else "Not found"
        print("\n[yellow]Keyring Configuration:[/yellow]")
        print(f"[green]Keyring Directory:[/green] {escape(str(keyring_dir))} ({state})")


@app.command("set")
def set_config(
    key: str = typer.Argument(
        ..., help="Configuration key to set (e.g., DM_VAULT_ROOT, DM_KEYRING_DIR)"
    ),
    value: str = typer.Argument(..., help="Value to set for the configuration key"),
):
    """
    Set a configuration value in the .env file.
    """
    key = key.upper()
    if key == "DM_VALIDATE_POLICY" and value not in VALIDATE_POLICIES:
        print(f"[red]❌ DM_VALIDATE_POLICY must be one of: {', '.join(VALIDATE_POLICIES)}[/red]")
        raise typer.Exit(code=1)
    if key not in SETTINGS:
        console.warning(f"{key} is not a dark-matter setting, it will be ignored")

    env_file = find_env_file()

    if not env_file.exists():
        env_file.touch()
        console.info(f"Created empty {escape(str(env_file))}")

    # Update the .env file
    dotenv.set_key(str(env_file), key, value)

    print(f"[green]✅ Successfully set {escape(key)}=[/green] {escape(value)}")
    console.warning("Restart dark-matter for the change to take effect.")
