"""
Crypto Gateway - The narrow interface the vault uses to reach an asymmetric-encryption backend.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple


class KeyStatus(str, Enum):
    VALID = "Valid"
    NOT_FOUND = "NotFound"
    UNUSABLE = "Unusable"
    AMBIGUOUS = "AmbiguousMatch"


@dataclass
class KeyInfo:
    """Public description of one key identity available to a backend."""

    fingerprint: str
    algorithm: str
    can_encrypt: bool
    can_sign: bool
    uids: List[Tuple[str, str]] = field(default_factory=list)
    expires_at: Optional[datetime] = None
    revoked: bool = False

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= datetime.now(timezone.utc)

    def unusable_reason(self) -> Optional[str]:
        """Return why this key cannot encrypt for the vault, or None if it can."""
        if self.revoked:
            return "key is revoked"
        if self.expired:
            return f"key expired on {self.expires_at:%Y-%m-%d}"
        if not self.can_encrypt:
            return "key has no encryption capability (signing-only)"
        return None


def resolve_key(keys: List[KeyInfo], key_id: str) -> Tuple[KeyStatus, List[KeyInfo]]:
    """
    Match a key identifier against the available keys.

    An exact fingerprint match wins; otherwise the identifier is treated as a
    prefix and must select exactly one key. Matching ignores case.

    Args:
        keys: Keys known to the backend
        key_id: Full fingerprint or fingerprint prefix

    Returns:
        Tuple[KeyStatus, List[KeyInfo]]: The resolution status and the matching keys
    """
    wanted = key_id.strip().upper()
    if not wanted:
        return KeyStatus.NOT_FOUND, []

    exact = [k for k in keys if k.fingerprint.upper() == wanted]
    if exact:
        matches = exact
    else:
        matches = [k for k in keys if k.fingerprint.upper().startswith(wanted)]

    if not matches:
        return KeyStatus.NOT_FOUND, []
    if len(matches) > 1:
        return KeyStatus.AMBIGUOUS, matches
    if matches[0].unusable_reason():
        return KeyStatus.UNUSABLE, matches
    return KeyStatus.VALID, matches


class CryptoGateway(ABC):
    """
    Abstract base class for an encryption backend.

    Implementations raise ``EncryptionFailed`` / ``DecryptionFailed`` from
    ``core.errors`` when they cannot transform the payload.
    """

    @abstractmethod
    def list_keys(self) -> List[KeyInfo]:
        """
        List every key identity the backend can see.

        Returns:
            List[KeyInfo]: Available keys, usable or not.
        """
        pass

    @abstractmethod
    def encrypt(self, plaintext: bytes, key_id: str) -> bytes:
        """
        Encrypt a payload for a key.

        Args:
            plaintext (bytes): Raw content.
            key_id (str): Fingerprint (or unambiguous prefix) of the recipient key.

        Returns:
            bytes: Self-contained ciphertext.
        """
        pass

    @abstractmethod
    def decrypt(self, ciphertext: bytes, key_id: str) -> bytes:
        """
        Recover the plaintext of a payload produced by ``encrypt``.

        Args:
            ciphertext (bytes): Output of ``encrypt``.
            key_id (str): Fingerprint of the key that holds the private half.

        Returns:
            bytes: Original content.
        """
        pass

    def validate_key(self, key_id: str) -> KeyStatus:
        status, _ = resolve_key(self.list_keys(), key_id)
        return status

    def describe_key(self, key_id: str) -> Tuple[KeyStatus, List[KeyInfo]]:
        return resolve_key(self.list_keys(), key_id)
