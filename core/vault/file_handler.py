"""
File Handler - Manages the encryption, versioning and export of files in a vault.
"""

import logging
import os
import time
from pathlib import Path
from typing import List, Optional, Union

from core.errors import (
    DecryptionFailed,
    DestinationExists,
    EncryptionFailed,
    FileAlreadyTracked,
    FileNotTracked,
    IoError,
    SourceNotFound,
    StorageError,
    VersionNotFound,
)
from core.utils.hashing import hash_bytes
from core.vault.manager import Vault
from core.vault.models import Absent, FileObject, FileState, FileVersion, Present
from core.vault.staging import apply_staged

logger = logging.getLogger(__name__)


def absolute_path(path: Union[str, Path]) -> Path:
    """Absolute, normalized form of a user supplied path (symlinks are kept)."""
    return Path(os.path.abspath(os.path.expanduser(str(path))))


def resolve_name(vault: Vault, name_or_path: str) -> str:
    """
    Map a command argument to a tracked name.

    An exact name wins; otherwise the argument is taken as a path, which is how
    files added without an explicit name are keyed.
    """
    if vault.store.get_file(name_or_path) is not None:
        return name_or_path
    return str(absolute_path(name_or_path))


def _read_source(path: Path) -> bytes:
    if not path.is_file():
        raise SourceNotFound(path)
    try:
        return path.read_bytes()
    except OSError as e:
        raise SourceNotFound(path) from e


def _encrypt(vault: Vault, content: bytes, name: str) -> bytes:
    try:
        return vault.gateway.encrypt(content, vault.key_id)
    except EncryptionFailed as e:
        raise EncryptionFailed(name, e.reason) from e


def _state_of(vault: Vault, name: str) -> FileState:
    # Callers hold the vault lock
    file = vault.store.get_file(name)
    return Absent(name) if file is None else Present(file)


def _tracked(vault: Vault, name_or_path: str) -> FileObject:
    state = _state_of(vault, resolve_name(vault, name_or_path))
    if isinstance(state, Absent):
        raise FileNotTracked(state.name)
    return state.file


def file_state(vault: Vault, name_or_path: str) -> FileState:
    """
    Return the lifecycle state of a file.

    Returns:
        FileState: ``Absent`` or ``Present`` with its current version
    """
    with vault.reading(), vault.store.snapshot():
        return _state_of(vault, resolve_name(vault, name_or_path))


def add_file(vault: Vault, source: Union[str, Path], name: Optional[str] = None) -> FileObject:
    """
    Encrypt a file and start tracking it at version 1.

    Args:
        vault: Opened vault
        source: Path of the plaintext file
        name: Name in the vault, the absolute source path by default

    Returns:
        FileObject: The new row
    """
    source_path = absolute_path(source)
    name = name or str(source_path)

    with vault.writing():
        if isinstance(_state_of(vault, name), Present):
            raise FileAlreadyTracked(name)

        content = _read_source(source_path)
        content_hash = hash_bytes(content)
        ciphertext = _encrypt(vault, content, name)
        blob_id = vault.blobs.new_id()

        def commit() -> FileObject:
            file = FileObject(
                name=name,
                current_version=1,
                original_path=str(source_path),
                content_hash=content_hash,
            )
            with vault.store.transaction():
                if isinstance(_state_of(vault, name), Present):
                    raise FileAlreadyTracked(name)
                vault.store.insert_file(file)
                vault.store.insert_version(
                    FileVersion(name, 1, blob_id, content_hash, len(content), time.time())
                )
            return file

        file = apply_staged(
            stage=lambda: vault.blobs.write(blob_id, ciphertext),
            commit=commit,
            revert=lambda: vault.blobs.delete(blob_id),
            describe=f"add of '{name}'",
        )

    logger.info("Added %s as version 1", name)
    return file


def update_file(
    vault: Vault, name_or_path: str, source: Optional[Union[str, Path]] = None
) -> FileVersion:
    """
    Append a new version of a tracked file.

    Args:
        vault: Opened vault
        name_or_path: Tracked name (or its path)
        source: Read the new content from here instead of the recorded path

    Returns:
        FileVersion: The appended version
    """
    with vault.writing():
        file = _tracked(vault, name_or_path)
        name = file.name

        source_path = absolute_path(source) if source else Path(file.original_path)
        content = _read_source(source_path)
        content_hash = hash_bytes(content)
        ciphertext = _encrypt(vault, content, name)
        blob_id = vault.blobs.new_id()

        def commit() -> FileVersion:
            with vault.store.transaction():
                if isinstance(_state_of(vault, name), Absent):
                    raise FileNotTracked(name)
                # Read under the same write transaction that inserts it
                number = vault.store.next_version(name)
                record = FileVersion(name, number, blob_id, content_hash, len(content), time.time())
                vault.store.insert_version(record)
                vault.store.advance_file(name, number, content_hash)
            return record

        record = apply_staged(
            stage=lambda: vault.blobs.write(blob_id, ciphertext),
            commit=commit,
            revert=lambda: vault.blobs.delete(blob_id),
            describe=f"update of '{name}'",
        )

    logger.info("Updated %s to version %d", name, record.version)
    return record


def remove_file(vault: Vault, name_or_path: str) -> List[FileVersion]:
    """
    Delete a file and its whole version history.

    Blobs already missing (from an interrupted earlier removal) are tolerated.

    Returns:
        List[FileVersion]: The versions that were removed
    """
    with vault.writing():
        name = _tracked(vault, name_or_path).name
        versions = vault.store.list_versions(name)
        staged: List[str] = []

        def stage() -> None:
            try:
                for record in versions:
                    if vault.blobs.stage_delete(record.blob_id):
                        staged.append(record.blob_id)
            except OSError as e:
                revert()
                raise IoError(vault.blobs.blob_dir, str(e)) from e

        def commit() -> None:
            with vault.store.transaction():
                if vault.store.delete_file(name) == 0:
                    raise FileNotTracked(name)

        def revert() -> None:
            for blob_id in staged:
                vault.blobs.unstage_delete(blob_id)

        def finalize() -> None:
            for record in versions:
                vault.blobs.purge(record.blob_id)

        apply_staged(stage, commit, revert, finalize, describe=f"removal of '{name}'")

    logger.info("Removed %s (%d versions)", name, len(versions))
    return versions


def list_files(vault: Vault) -> List[FileObject]:
    with vault.reading(), vault.store.snapshot():
        return vault.store.list_files()


def file_history(vault: Vault, name_or_path: str) -> List[FileVersion]:
    with vault.reading(), vault.store.snapshot():
        name = _tracked(vault, name_or_path).name
        return vault.store.list_versions(name)


def export_destination(
    file: FileObject, relative: bool, output: Optional[Union[str, Path]], cwd: Optional[Path] = None
) -> Path:
    if output:
        return absolute_path(output)
    if relative:
        return (cwd or Path.cwd()) / Path(file.original_path).name
    return Path(file.original_path)


def _write_plaintext(destination: Path, content: bytes) -> None:
    temp_path = destination.with_name(f".{destination.name}.dm-export")
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_bytes(content)
        os.replace(temp_path, destination)
    except OSError as e:
        temp_path.unlink(missing_ok=True)
        raise IoError(destination, str(e)) from e


def export_file(
    vault: Vault,
    name_or_path: str,
    version: Optional[int] = None,
    relative: bool = False,
    assume_yes: bool = False,
    output: Optional[Union[str, Path]] = None,
) -> Path:
    """
    Decrypt a version of a tracked file back to disk.

    Args:
        vault: Opened vault
        name_or_path: Tracked name (or its path)
        version: Historical version to export, the current one by default
        relative: Write into the current directory instead of the recorded path
        assume_yes: Overwrite an existing destination
        output: Explicit destination path

    Returns:
        Path: Where the plaintext was written
    """
    with vault.reading():
        with vault.store.snapshot():
            file = _tracked(vault, name_or_path)
            name = file.name

            number = version or file.current_version
            record = vault.store.get_version(name, number)
            if record is None:
                raise VersionNotFound(name, number)

            destination = export_destination(file, relative, output)
            if destination.exists() and not assume_yes:
                raise DestinationExists(destination)

            # Only read a blob once its row is confirmed in this snapshot
            if not vault.blobs.exists(record.blob_id):
                raise StorageError(
                    f"Ciphertext of '{name}' version {number} is missing; "
                    "run 'dark-matter vault audit'"
                )
            ciphertext = vault.blobs.read(record.blob_id)

        try:
            content = vault.gateway.decrypt(ciphertext, vault.key_id)
        except DecryptionFailed as e:
            raise DecryptionFailed(name, e.reason) from e
        if hash_bytes(content) != record.content_hash:
            raise DecryptionFailed(name, "content hash does not match the recorded version")

        _write_plaintext(destination, content)

    logger.info("Exported %s version %d to %s", name, number, destination)
    return destination
