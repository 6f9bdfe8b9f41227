"""
Metadata Store - Transactional SQLite storage for vault identity, file history and secrets.
"""

import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set

from core.errors import StorageError, VaultBusy
from core.vault.models import FileObject, FileVersion, SecretEntry, VaultIdentity

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE vault_identity (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    key_id TEXT NOT NULL,
    vault_root TEXT NOT NULL,
    created_at REAL NOT NULL,
    layout_version INTEGER NOT NULL
);

CREATE TABLE file_objects (
    name TEXT PRIMARY KEY,
    current_version INTEGER NOT NULL CHECK (current_version >= 1),
    original_path TEXT NOT NULL,
    content_hash TEXT NOT NULL
);

CREATE TABLE file_versions (
    name TEXT NOT NULL REFERENCES file_objects(name) ON DELETE CASCADE,
    version INTEGER NOT NULL CHECK (version >= 1),
    blob_id TEXT NOT NULL UNIQUE,
    content_hash TEXT NOT NULL,
    size INTEGER NOT NULL,
    created_at REAL NOT NULL,
    PRIMARY KEY (name, version)
);

CREATE TABLE secrets (
    name TEXT PRIMARY KEY,
    body BLOB NOT NULL,
    updated_at REAL NOT NULL
);

CREATE TABLE secret_tags (
    name TEXT NOT NULL REFERENCES secrets(name) ON DELETE CASCADE,
    tag TEXT NOT NULL,
    PRIMARY KEY (name, tag)
);
"""


class MetadataStore:
    """
    Thin data-access layer over one SQLite file.

    Every mutation must run inside ``transaction()``; reads that need a consistent
    view across several queries run inside ``snapshot()``. SQLite errors never leak:
    they are re-raised as ``StorageError`` (or ``VaultBusy`` on lock contention).
    """

    # Seconds SQLite waits on its own file lock before giving up
    BUSY_TIMEOUT = 1.0

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def exists(self) -> bool:
        return self.db_path.exists()

    def connect(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self._conn = sqlite3.connect(
                    str(self.db_path), isolation_level=None, timeout=self.BUSY_TIMEOUT
                )
                self._conn.row_factory = sqlite3.Row
                self._conn.execute("PRAGMA foreign_keys=ON")
                self._conn.execute("PRAGMA journal_mode=WAL")
                self._conn.execute("PRAGMA synchronous=FULL")
            except sqlite3.Error as e:
                self._conn = None
                raise self._translate(e) from e
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _translate(self, e: sqlite3.Error) -> Exception:
        if isinstance(e, sqlite3.OperationalError) and "locked" in str(e):
            return VaultBusy(self.db_path.parent)
        return StorageError(f"Metadata store error ({self.db_path.name}): {e}")

    def _execute(self, sql: str, params: Iterable = ()) -> sqlite3.Cursor:
        try:
            return self.connect().execute(sql, tuple(params))
        except sqlite3.Error as e:
            raise self._translate(e) from e

    @contextmanager
    def transaction(self) -> Iterator["MetadataStore"]:
        """
        Run a block atomically: everything commits together or nothing does.

        ``BEGIN IMMEDIATE`` takes SQLite's write lock up front, so reads made inside
        the block (like the current maximum version) cannot be raced by another writer.
        """
        self._execute("BEGIN IMMEDIATE")
        try:
            yield self
        except BaseException:
            self._end("ROLLBACK")
            raise
        try:
            self._end("COMMIT")
        except StorageError:
            self._end("ROLLBACK")
            raise

    @contextmanager
    def snapshot(self) -> Iterator["MetadataStore"]:
        """Read-only block seeing one committed state of the store."""
        self._execute("BEGIN")
        try:
            yield self
        finally:
            self._end("ROLLBACK")

    def _end(self, statement: str) -> None:
        if self.connect().in_transaction:
            self._execute(statement)

    def create_schema(self, key_id: str, vault_root: str, layout_version: int) -> VaultIdentity:
        identity = VaultIdentity(
            key_id=key_id,
            vault_root=vault_root,
            created_at=time.time(),
            layout_version=layout_version,
        )
        with self.transaction():
            for statement in SCHEMA_SQL.split(";"):
                if statement.strip():
                    self._execute(statement)
            self._execute(
                "INSERT INTO vault_identity (id, key_id, vault_root, created_at, layout_version) "
                "VALUES (1, ?, ?, ?, ?)",
                (identity.key_id, identity.vault_root, identity.created_at, identity.layout_version),
            )
        logger.debug("Created metadata schema v%s at %s", layout_version, self.db_path)
        return identity

    def identity(self) -> Optional[VaultIdentity]:
        row = self._execute(
            "SELECT key_id, vault_root, created_at, layout_version FROM vault_identity WHERE id = 1"
        ).fetchone()
        if row is None:
            return None
        return VaultIdentity(**dict(row))

    # File objects and versions

    def get_file(self, name: str) -> Optional[FileObject]:
        row = self._execute(
            "SELECT name, current_version, original_path, content_hash "
            "FROM file_objects WHERE name = ?",
            (name,),
        ).fetchone()
        return FileObject(**dict(row)) if row else None

    def list_files(self) -> List[FileObject]:
        rows = self._execute(
            "SELECT name, current_version, original_path, content_hash "
            "FROM file_objects ORDER BY name"
        ).fetchall()
        return [FileObject(**dict(row)) for row in rows]

    def insert_file(self, file: FileObject) -> None:
        self._execute(
            "INSERT INTO file_objects (name, current_version, original_path, content_hash) "
            "VALUES (?, ?, ?, ?)",
            (file.name, file.current_version, file.original_path, file.content_hash),
        )

    def advance_file(self, name: str, version: int, content_hash: str) -> None:
        self._execute(
            "UPDATE file_objects SET current_version = ?, content_hash = ? WHERE name = ?",
            (version, content_hash, name),
        )

    def delete_file(self, name: str) -> int:
        self._execute("DELETE FROM file_versions WHERE name = ?", (name,))
        return self._execute("DELETE FROM file_objects WHERE name = ?", (name,)).rowcount

    def next_version(self, name: str) -> int:
        row = self._execute(
            "SELECT COALESCE(MAX(version), 0) AS latest FROM file_versions WHERE name = ?",
            (name,),
        ).fetchone()
        return row["latest"] + 1

    def insert_version(self, version: FileVersion) -> None:
        self._execute(
            "INSERT INTO file_versions (name, version, blob_id, content_hash, size, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                version.name,
                version.version,
                version.blob_id,
                version.content_hash,
                version.size,
                version.created_at,
            ),
        )

    def get_version(self, name: str, version: int) -> Optional[FileVersion]:
        row = self._execute(
            "SELECT name, version, blob_id, content_hash, size, created_at "
            "FROM file_versions WHERE name = ? AND version = ?",
            (name, version),
        ).fetchone()
        return FileVersion(**dict(row)) if row else None

    def list_versions(self, name: str) -> List[FileVersion]:
        rows = self._execute(
            "SELECT name, version, blob_id, content_hash, size, created_at "
            "FROM file_versions WHERE name = ? ORDER BY version",
            (name,),
        ).fetchall()
        return [FileVersion(**dict(row)) for row in rows]

    def all_blob_ids(self) -> Dict[str, FileVersion]:
        rows = self._execute(
            "SELECT name, version, blob_id, content_hash, size, created_at FROM file_versions"
        ).fetchall()
        return {row["blob_id"]: FileVersion(**dict(row)) for row in rows}

    # Secrets

    def _tags_by_name(self, names: Optional[List[str]] = None) -> Dict[str, Set[str]]:
        if names is None:
            rows = self._execute("SELECT name, tag FROM secret_tags").fetchall()
        else:
            placeholders = ",".join("?" for _ in names)
            rows = self._execute(
                f"SELECT name, tag FROM secret_tags WHERE name IN ({placeholders})", names
            ).fetchall()
        tags: Dict[str, Set[str]] = {}
        for row in rows:
            tags.setdefault(row["name"], set()).add(row["tag"])
        return tags

    def get_secret(self, name: str) -> Optional[SecretEntry]:
        row = self._execute(
            "SELECT name, body, updated_at FROM secrets WHERE name = ?", (name,)
        ).fetchone()
        if row is None:
            return None
        tags = self._tags_by_name([name]).get(name, set())
        return SecretEntry(row["name"], bytes(row["body"]), frozenset(tags), row["updated_at"])

    def list_secrets(self) -> List[SecretEntry]:
        rows = self._execute("SELECT name, body, updated_at FROM secrets ORDER BY name").fetchall()
        tags = self._tags_by_name()
        return [
            SecretEntry(
                row["name"],
                bytes(row["body"]),
                frozenset(tags.get(row["name"], set())),
                row["updated_at"],
            )
            for row in rows
        ]

    def _replace_tags(self, name: str, tags: Iterable[str]) -> None:
        self._execute("DELETE FROM secret_tags WHERE name = ?", (name,))
        for tag in sorted(set(tags)):
            self._execute("INSERT INTO secret_tags (name, tag) VALUES (?, ?)", (name, tag))

    def insert_secret(self, entry: SecretEntry) -> None:
        self._execute(
            "INSERT INTO secrets (name, body, updated_at) VALUES (?, ?, ?)",
            (entry.name, entry.body, entry.updated_at),
        )
        self._replace_tags(entry.name, entry.tags)

    def update_secret(self, entry: SecretEntry) -> None:
        self._execute(
            "UPDATE secrets SET body = ?, updated_at = ? WHERE name = ?",
            (entry.body, entry.updated_at, entry.name),
        )
        self._replace_tags(entry.name, entry.tags)

    def delete_secret(self, name: str) -> int:
        return self._execute("DELETE FROM secrets WHERE name = ?", (name,)).rowcount

    def count_secrets(self) -> int:
        return self._execute("SELECT COUNT(*) AS n FROM secrets").fetchone()["n"]
