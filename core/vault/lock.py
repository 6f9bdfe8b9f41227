"""
Vault Lock - Advisory lock serializing dark-matter commands on one vault root.
"""

import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from core.config import Config
from core.errors import IoError, VaultBusy

logger = logging.getLogger(__name__)


@contextmanager
def vault_lock(root: Path, exclusive: bool = True) -> Iterator[Path]:
    """
    Hold the vault lock for the duration of a ``with`` block.

    Mutating commands take the lock exclusively; read-only commands take it shared,
    so they run alongside each other but never next to a writer. The lock is never
    waited on: contention fails immediately with ``VaultBusy``.

    Args:
        root: Vault root directory (must exist)
        exclusive: Exclusive (writer) or shared (reader) lock

    Yields:
        Path: The lock file
    """
    lock_path = Path(root) / Config.LOCK_FILE
    try:
        fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o600)
    except OSError as e:
        raise IoError(lock_path, str(e)) from e

    try:
        mode = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
        try:
            fcntl.flock(fd, mode | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise VaultBusy(root) from e
        logger.debug("Acquired %s lock on %s", "exclusive" if exclusive else "shared", root)
        try:
            yield lock_path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)
