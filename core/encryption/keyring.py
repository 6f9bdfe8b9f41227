"""
Keyring Gateway - Crypto backend backed by a directory of PEM private keys.

Layout of the keyring directory::

    <keyring>/
        work.pem        # PEM private key (RSA keys can encrypt, Ed25519/EC keys only sign)
        work.json       # optional sidecar: {"name", "email", "expires_at", "revoked"}

Keys are identified by the uppercase SHA-256 hex of their DER public key, so a key
keeps its identity whatever its file is called.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from core.encryption.gateway import CryptoGateway, KeyInfo, KeyStatus, resolve_key
from core.encryption.service import EncryptionService
from core.errors import DecryptionFailed, EncryptionFailed, IoError

logger = logging.getLogger(__name__)


def key_fingerprint(private_key) -> str:
    """Return the uppercase SHA-256 fingerprint of a key's public half."""
    der = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    digest = hashes.Hash(hashes.SHA256())
    digest.update(der)
    return digest.finalize().hex().upper()


def _parse_expiry(value) -> Optional[datetime]:
    if not value:
        return None
    text = str(value).strip()
    # fromisoformat only accepts a trailing "Z" from Python 3.11
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    expires = datetime.fromisoformat(text)
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires


def _parse_revoked(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "yes", "1"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "no", "0", ""):
        return False
    if isinstance(value, int):
        return value == 1
    raise ValueError(f"revoked must be a boolean, got {value!r}")


def _read_sidecar(sidecar_path: Path) -> Dict:
    """
    Load the JSON sidecar of a key. Unreadable fields are dropped with a warning so a
    bad sidecar never hides the key itself.
    """
    try:
        sidecar = json.loads(sidecar_path.read_text())
    except ValueError as e:
        logger.warning("Ignoring malformed sidecar %s: %s", sidecar_path.name, e)
        return {}
    if not isinstance(sidecar, dict):
        logger.warning("Ignoring sidecar %s: expected a JSON object", sidecar_path.name)
        return {}

    for field, parse in (("expires_at", _parse_expiry), ("revoked", _parse_revoked)):
        if field not in sidecar:
            continue
        try:
            sidecar[field] = parse(sidecar[field])
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring %s in sidecar %s: %s", field, sidecar_path.name, e)
            del sidecar[field]
    return sidecar


def _describe(private_key, fingerprint: str, sidecar: Dict) -> KeyInfo:
    if isinstance(private_key, rsa.RSAPrivateKey):
        algorithm = f"RSA-{private_key.key_size}"
        can_encrypt, can_sign = True, True
    elif isinstance(private_key, ed25519.Ed25519PrivateKey):
        algorithm = "Ed25519"
        can_encrypt, can_sign = False, True
    elif isinstance(private_key, ec.EllipticCurvePrivateKey):
        algorithm = f"EC-{private_key.curve.name}"
        can_encrypt, can_sign = False, True
    else:
        algorithm = type(private_key).__name__
        can_encrypt, can_sign = False, False

    uids = []
    if sidecar.get("name") or sidecar.get("email"):
        uids.append((sidecar.get("name", ""), sidecar.get("email", "")))

    return KeyInfo(
        fingerprint=fingerprint,
        algorithm=algorithm,
        can_encrypt=can_encrypt,
        can_sign=can_sign,
        uids=uids,
        expires_at=sidecar.get("expires_at"),
        revoked=sidecar.get("revoked", False),
    )


class KeyringGateway(CryptoGateway):
    """
    Loads every ``*.pem`` private key found in the keyring directory.

    The directory is scanned lazily on first use and cached for the lifetime of the
    gateway, which matches the single-command lifetime of the CLI.
    """

    def __init__(self, keyring_dir: Path, passphrase: Optional[str] = None):
        self.keyring_dir = Path(keyring_dir).expanduser()
        self.passphrase = passphrase.encode() if passphrase else None
        self._keys: Optional[Dict[str, Tuple[KeyInfo, object]]] = None

    def _load(self) -> Dict[str, Tuple[KeyInfo, object]]:
        if self._keys is not None:
            return self._keys

        self._keys = {}
        if not self.keyring_dir.is_dir():
            logger.debug("Keyring directory %s does not exist", self.keyring_dir)
            return self._keys

        for pem_path in sorted(self.keyring_dir.glob("*.pem")):
            try:
                private_key = serialization.load_pem_private_key(
                    pem_path.read_bytes(), password=self.passphrase
                )
            except (ValueError, TypeError) as e:
                logger.warning("Skipping unreadable key file %s: %s", pem_path.name, e)
                continue

            sidecar_path = pem_path.with_suffix(".json")
            sidecar = _read_sidecar(sidecar_path) if sidecar_path.exists() else {}

            fingerprint = key_fingerprint(private_key)
            self._keys[fingerprint] = (_describe(private_key, fingerprint, sidecar), private_key)
            logger.debug("Loaded key %s from %s", fingerprint[:16], pem_path.name)

        return self._keys

    def list_keys(self) -> List[KeyInfo]:
        return [info for info, _ in self._load().values()]

    def generate_key(self, name: str = "", email: str = "", key_size: int = 3072) -> KeyInfo:
        """
        Create a new RSA key in the keyring, protected by the passphrase if one is set.

        Args:
            name: User ID name stored in the sidecar
            email: User ID email stored in the sidecar
            key_size: RSA modulus size in bits

        Returns:
            KeyInfo: The new key
        """
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        fingerprint = key_fingerprint(private_key)
        if self.passphrase:
            protection = serialization.BestAvailableEncryption(self.passphrase)
        else:
            protection = serialization.NoEncryption()
        pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=protection,
        )

        pem_path = self.keyring_dir / f"{fingerprint[:16].lower()}.pem"
        sidecar = {"name": name, "email": email} if (name or email) else {}
        try:
            self.keyring_dir.mkdir(parents=True, exist_ok=True)
            pem_path.write_bytes(pem)
            os.chmod(pem_path, 0o600)
            if sidecar:
                pem_path.with_suffix(".json").write_text(json.dumps(sidecar, indent=2))
        except OSError as e:
            raise IoError(pem_path, str(e)) from e

        # Forget the cache so the next lookup sees the new key
        self._keys = None
        logger.info("Generated key %s in %s", fingerprint, pem_path)
        return _describe(private_key, fingerprint, sidecar)

    def _lookup(self, key_id: str) -> KeyInfo:
        status, matches = resolve_key(self.list_keys(), key_id)
        if status in (KeyStatus.NOT_FOUND, KeyStatus.AMBIGUOUS):
            raise ValueError(f"key lookup returned {status.value}")
        return matches[0]

    def _service_for(self, info: KeyInfo) -> EncryptionService:
        private_key = self._load()[info.fingerprint][1]
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise ValueError(f"{info.algorithm} keys cannot encrypt")
        return EncryptionService(private_key.public_key(), private_key)

    def encrypt(self, plaintext: bytes, key_id: str) -> bytes:
        try:
            info = self._lookup(key_id)
            reason = info.unusable_reason()
            if reason:
                raise ValueError(reason)
            return self._service_for(info).encrypt_bytes(plaintext)
        except ValueError as e:
            raise EncryptionFailed(f"key {key_id}", str(e)) from e

    def decrypt(self, ciphertext: bytes, key_id: str) -> bytes:
        try:
            info = self._lookup(key_id)
            # Expired keys may still open old envelopes; revoked keys may not
            if info.revoked:
                raise ValueError("key is revoked")
            return self._service_for(info).decrypt_bytes(ciphertext)
        except ValueError as e:
            raise DecryptionFailed(f"key {key_id}", str(e)) from e
