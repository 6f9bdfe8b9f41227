"""
Vault Models - Row shapes of the metadata store and the per-file lifecycle state.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Union


@dataclass(frozen=True)
class VaultIdentity:
    key_id: str
    vault_root: str
    created_at: float
    layout_version: int


@dataclass(frozen=True)
class FileObject:
    name: str
    current_version: int
    original_path: str
    content_hash: str


@dataclass(frozen=True)
class FileVersion:
    name: str
    version: int
    blob_id: str
    content_hash: str
    size: int
    created_at: float


@dataclass(frozen=True)
class SecretEntry:
    name: str
    body: bytes = field(repr=False)
    tags: FrozenSet[str]
    updated_at: float


@dataclass(frozen=True)
class Absent:
    """No row exists for the name."""

    name: str


@dataclass(frozen=True)
class Present:
    """A fully committed file whose newest version is ``file.current_version``."""

    file: FileObject

    @property
    def version(self) -> int:
        return self.file.current_version


FileState = Union[Absent, Present]
