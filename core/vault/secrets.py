"""
Secret Store - Small named values encrypted directly into the metadata store.
"""

import logging
import time
from typing import FrozenSet, Iterable, List, Optional

from core.errors import (
    DecryptionFailed,
    EncryptionFailed,
    SecretAlreadyExists,
    SecretNotFound,
)
from core.vault.manager import Vault
from core.vault.models import SecretEntry

logger = logging.getLogger(__name__)


def parse_tags(raw: Optional[str]) -> FrozenSet[str]:
    """Turn a comma separated tag list into a set, ignoring blanks and duplicates."""
    if not raw:
        return frozenset()
    return frozenset(tag.strip() for tag in raw.split(",") if tag.strip())


class SecretStore:
    """
    Add, update, remove, list and show secrets of a vault.

    A secret has no separate ciphertext file and no history: each mutation is a
    single metadata transaction, and ``update`` overwrites the previous value.
    """

    def __init__(self, vault: Vault):
        self.vault = vault

    def _encrypt(self, name: str, value: str) -> bytes:
        try:
            return self.vault.gateway.encrypt(value.encode("utf-8"), self.vault.key_id)
        except EncryptionFailed as e:
            raise EncryptionFailed(name, e.reason) from e

    def add(self, name: str, value: str, tags: Iterable[str] = ()) -> SecretEntry:
        store = self.vault.store
        with self.vault.writing():
            if store.get_secret(name) is not None:
                raise SecretAlreadyExists(name)

            entry = SecretEntry(name, self._encrypt(name, value), frozenset(tags), time.time())
            with store.transaction():
                if store.get_secret(name) is not None:
                    raise SecretAlreadyExists(name)
                store.insert_secret(entry)

        logger.info("Added secret %s", name)
        return entry

    def update(self, name: str, value: str, tags: Optional[Iterable[str]] = None) -> SecretEntry:
        """
        Replace the value of a secret.

        Args:
            name: Secret name
            value: New plaintext value
            tags: New tag set (replaces the old one); None keeps the current tags
        """
        store = self.vault.store
        with self.vault.writing():
            current = store.get_secret(name)
            if current is None:
                raise SecretNotFound(name)

            new_tags = current.tags if tags is None else frozenset(tags)
            entry = SecretEntry(name, self._encrypt(name, value), new_tags, time.time())
            with store.transaction():
                if store.get_secret(name) is None:
                    raise SecretNotFound(name)
                store.update_secret(entry)

        logger.info("Updated secret %s", name)
        return entry

    def remove(self, name: str) -> None:
        store = self.vault.store
        with self.vault.writing():
            with store.transaction():
                if store.delete_secret(name) == 0:
                    raise SecretNotFound(name)
        logger.info("Removed secret %s", name)

    def list(self, tags: Iterable[str] = ()) -> List[SecretEntry]:
        """
        List secrets, optionally only those sharing at least one tag with ``tags``.

        Values stay encrypted.
        """
        wanted = frozenset(tags)
        with self.vault.reading(), self.vault.store.snapshot():
            entries = self.vault.store.list_secrets()
        if not wanted:
            return entries
        return [entry for entry in entries if entry.tags & wanted]

    def show(self, name: str) -> str:
        """Decrypt and return the value of one secret."""
        with self.vault.reading():
            with self.vault.store.snapshot():
                entry = self.vault.store.get_secret(name)
            if entry is None:
                raise SecretNotFound(name)
            try:
                value = self.vault.gateway.decrypt(entry.body, self.vault.key_id)
            except DecryptionFailed as e:
                raise DecryptionFailed(name, e.reason) from e
        return value.decode("utf-8", errors="replace")
