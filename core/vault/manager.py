"""
Vault Manager - Core functionality for initializing and opening dark-matter vaults.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

from core.config import Config
from core.encryption.factory import get_gateway
from core.encryption.gateway import CryptoGateway
from core.errors import AlreadyInitialized, IoError, StorageError, VaultNotFound
from core.storage.blobs import BlobStore
from core.storage.metadata import MetadataStore
from core.vault.gate import KeyValidationGate
from core.vault.lock import vault_lock
from core.vault.models import VaultIdentity

logger = logging.getLogger(__name__)


def get_vault_root(root: Optional[str] = None) -> Path:
    """Returns the absolute vault root, defaulting to the configured location."""
    return Path(root or Config.VAULT_ROOT).expanduser().resolve()


def get_db_path(root: Path) -> Path:
    """Returns the path to the metadata store of a vault."""
    return Path(root) / Config.DB_NAME


def init_vault(
    root: Optional[str] = None, key_id: str = "", gateway: Optional[CryptoGateway] = None
) -> VaultIdentity:
    """
    Bind a validated key to a new, empty vault.

    The key is checked before anything is created. Running this against an existing
    vault fails instead of reusing or resetting it.

    Args:
        root: Vault location (created if missing)
        key_id: Fingerprint or unambiguous fingerprint prefix of the key
        gateway: Crypto backend, the configured one by default

    Returns:
        VaultIdentity: The identity stored in the new vault
    """
    vault_root = get_vault_root(root)
    db_path = get_db_path(vault_root)
    if db_path.exists():
        raise AlreadyInitialized(vault_root)

    gate = KeyValidationGate(gateway or get_gateway())
    key = gate.require_valid(key_id)

    try:
        vault_root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise IoError(vault_root, str(e)) from e
    with vault_lock(vault_root, exclusive=True):
        if db_path.exists():
            raise AlreadyInitialized(vault_root)

        (vault_root / Config.BLOB_DIR).mkdir(exist_ok=True)
        store = MetadataStore(db_path)
        try:
            # Bind the full fingerprint, never the prefix the user typed
            identity = store.create_schema(key.fingerprint, str(vault_root), Config.LAYOUT_VERSION)
        except BaseException:
            store.close()
            for suffix in ("", "-wal", "-shm", "-journal"):
                Path(f"{db_path}{suffix}").unlink(missing_ok=True)
            raise
        store.close()

    logger.info("Initialized vault at %s with key %s", vault_root, key.fingerprint)
    return identity


class Vault:
    """
    An opened vault: its identity, metadata store, blob store and crypto backend.

    Mutating commands run inside ``writing()`` and read-only commands inside
    ``reading()``, which take the vault lock and apply the key validation policy.
    """

    def __init__(
        self,
        root: Path,
        identity: VaultIdentity,
        store: MetadataStore,
        gateway: CryptoGateway,
    ):
        self.root = root
        self.identity = identity
        self.store = store
        self.gateway = gateway
        self.gate = KeyValidationGate(gateway)
        self.blobs = BlobStore(root / Config.BLOB_DIR)

    @classmethod
    def open(cls, root: Optional[str] = None, gateway: Optional[CryptoGateway] = None) -> "Vault":
        vault_root = get_vault_root(root)
        db_path = get_db_path(vault_root)
        if not db_path.exists():
            raise VaultNotFound(vault_root)

        store = MetadataStore(db_path)
        identity = store.identity()
        if identity is None:
            store.close()
            raise StorageError(f"Metadata store {db_path} has no vault identity")
        if identity.layout_version > Config.LAYOUT_VERSION:
            store.close()
            raise StorageError(
                f"Vault layout v{identity.layout_version} is newer than supported "
                f"v{Config.LAYOUT_VERSION}"
            )
        return cls(vault_root, identity, store, gateway or get_gateway())

    @property
    def key_id(self) -> str:
        return self.identity.key_id

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "Vault":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def require_key(self) -> None:
        if Config.VALIDATE_POLICY == "always":
            self.gate.require_valid(self.key_id)

    @contextmanager
    def writing(self, validate: bool = True) -> Iterator["Vault"]:
        """Validate the bound key, then hold the exclusive vault lock."""
        if validate:
            self.require_key()
        with vault_lock(self.root, exclusive=True):
            yield self

    @contextmanager
    def reading(self) -> Iterator["Vault"]:
        with vault_lock(self.root, exclusive=False):
            yield self

    def status(self) -> Dict:
        with self.reading(), self.store.snapshot():
            files = self.store.list_files()
            versions = self.store.all_blob_ids()
            return {
                "root": str(self.root),
                "key_id": self.key_id,
                "created_at": self.identity.created_at,
                "layout_version": self.identity.layout_version,
                "file_count": len(files),
                "version_count": len(versions),
                "secret_count": self.store.count_secrets(),
            }
