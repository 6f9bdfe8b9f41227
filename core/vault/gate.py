"""
Key Validation Gate - Precondition check run before any key is trusted for encryption.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from core.encryption.gateway import CryptoGateway, KeyInfo, KeyStatus
from core.errors import AmbiguousKey, CryptoError, KeyNotFound, KeyUnusable

logger = logging.getLogger(__name__)

SELF_TEST_PAYLOAD = b"dark-matter key self-test"


@dataclass
class KeyReport:
    key_id: str
    status: KeyStatus
    matches: List[KeyInfo] = field(default_factory=list)

    @property
    def key(self) -> Optional[KeyInfo]:
        return self.matches[0] if len(self.matches) == 1 else None

    @property
    def reason(self) -> Optional[str]:
        if self.status == KeyStatus.NOT_FOUND:
            return "not found in keyring"
        if self.status == KeyStatus.AMBIGUOUS:
            return "prefix matches more than one key"
        if self.status == KeyStatus.UNUSABLE and self.key:
            return self.key.unusable_reason()
        return None


class KeyValidationGate:
    """
    Resolves a key identifier and decides whether the vault may use it.

    ``validate`` is a pure query. ``require_valid`` is what mutating operations call
    first: it raises before any file is read, encrypted or written.
    """

    def __init__(self, gateway: CryptoGateway):
        self.gateway = gateway

    def validate(self, key_id: str) -> KeyReport:
        status, matches = self.gateway.describe_key(key_id)
        logger.debug("Key %s resolved to %s", key_id, status.value)
        return KeyReport(key_id=key_id, status=status, matches=matches)

    def require_valid(self, key_id: str) -> KeyInfo:
        """
        Raise unless ``key_id`` resolves to exactly one usable encryption key.

        Returns:
            KeyInfo: The resolved key
        """
        report = self.validate(key_id)
        if report.status == KeyStatus.NOT_FOUND:
            raise KeyNotFound(key_id)
        if report.status == KeyStatus.AMBIGUOUS:
            raise AmbiguousKey(key_id, [k.fingerprint for k in report.matches])
        if report.status == KeyStatus.UNUSABLE:
            raise KeyUnusable(key_id, report.reason or "cannot be used for encryption")
        return report.key

    def self_test(self, key_id: str) -> Optional[str]:
        """
        Encrypt and decrypt a small payload with the key.

        Returns:
            Optional[str]: None on success, otherwise the failure message
        """
        try:
            sealed = self.gateway.encrypt(SELF_TEST_PAYLOAD, key_id)
            if self.gateway.decrypt(sealed, key_id) != SELF_TEST_PAYLOAD:
                return "round-trip returned different content"
        except CryptoError as e:
            return str(e)
        return None
