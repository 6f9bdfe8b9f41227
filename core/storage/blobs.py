"""
Blob Store - Ciphertext files of a vault, named by opaque identifiers.
"""

import logging
import os
import uuid
from pathlib import Path
from typing import List, Set

from core.errors import IoError

logger = logging.getLogger(__name__)

BLOB_SUFFIX = ".enc"
TEMP_SUFFIX = ".enc.tmp"
TRASH_SUFFIX = ".enc.trash"


class BlobStore:
    """
    Stores each file version as ``<blob_dir>/<uuid>.enc``.

    Names carry no information about the plaintext file. Writes are atomic
    (temporary file, fsync, rename) and deletions are staged through a ``.trash``
    rename so they can be undone until the metadata commit succeeds.
    """

    def __init__(self, blob_dir: Path):
        self.blob_dir = Path(blob_dir)

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    def path_for(self, blob_id: str) -> Path:
        return self.blob_dir / f"{blob_id}{BLOB_SUFFIX}"

    def _trash_path(self, blob_id: str) -> Path:
        return self.blob_dir / f"{blob_id}{TRASH_SUFFIX}"

    def write(self, blob_id: str, data: bytes) -> Path:
        """
        Atomically write a ciphertext blob.

        Args:
            blob_id: Identifier returned by ``new_id``
            data: Ciphertext

        Returns:
            Path: Final location of the blob
        """
        final_path = self.path_for(blob_id)
        temp_path = self.blob_dir / f"{blob_id}{TEMP_SUFFIX}"
        try:
            self.blob_dir.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, final_path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise IoError(final_path, str(e)) from e
        logger.debug("Wrote blob %s (%d bytes)", blob_id, len(data))
        return final_path

    def read(self, blob_id: str) -> bytes:
        path = self.path_for(blob_id)
        try:
            return path.read_bytes()
        except OSError as e:
            raise IoError(path, str(e)) from e

    def exists(self, blob_id: str) -> bool:
        return self.path_for(blob_id).exists()

    def delete(self, blob_id: str) -> None:
        """Delete a committed-away blob; missing blobs are fine."""
        self.path_for(blob_id).unlink(missing_ok=True)

    def stage_delete(self, blob_id: str) -> bool:
        """
        Move a blob aside so its deletion can still be reverted.

        Returns:
            bool: False if the blob was already gone (an earlier interrupted removal)
        """
        path = self.path_for(blob_id)
        if not path.exists():
            logger.debug("Blob %s already missing, nothing to stage", blob_id)
            return False
        os.replace(path, self._trash_path(blob_id))
        return True

    def unstage_delete(self, blob_id: str) -> None:
        trash = self._trash_path(blob_id)
        if trash.exists():
            os.replace(trash, self.path_for(blob_id))

    def purge(self, blob_id: str) -> None:
        self._trash_path(blob_id).unlink(missing_ok=True)

    def list_ids(self) -> Set[str]:
        if not self.blob_dir.is_dir():
            return set()
        return {
            p.name[: -len(BLOB_SUFFIX)]
            for p in self.blob_dir.iterdir()
            if p.is_file() and p.name.endswith(BLOB_SUFFIX)
        }

    def leftovers(self) -> List[Path]:
        """Temporary or trashed files left behind by interrupted commands."""
        if not self.blob_dir.is_dir():
            return []
        return sorted(
            p
            for p in self.blob_dir.iterdir()
            if p.is_file() and (p.name.endswith(TEMP_SUFFIX) or p.name.endswith(TRASH_SUFFIX))
        )
