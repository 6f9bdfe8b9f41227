import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from core.config import Config

console = Console(stderr=True)

def info(msg): console.print(f"ℹ️  {msg}", style="blue")
def warning(msg): console.print(f"⚠️  {msg}", style="yellow")


def setup_logging(verbose: bool = False) -> None:
    """
    Route engine loggers to the stderr console and, when configured, to a log file.

    Args:
        verbose: Force DEBUG level regardless of Config.LOG_LEVEL
    """
    level = logging.DEBUG if verbose else getattr(logging, Config.LOG_LEVEL.upper(), logging.WARNING)

    root = logging.getLogger("core")
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    handler.setLevel(level)
    root.addHandler(handler)

    if Config.LOG_FILE:
        log_path = Path(Config.LOG_FILE).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        # The file always gets the full diagnostic trail
        file_handler.setLevel(logging.DEBUG)
        root.setLevel(logging.DEBUG)
        root.addHandler(file_handler)
