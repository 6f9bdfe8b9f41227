import json
from pathlib import Path
from typing import List

import pytest
from dotenv import load_dotenv
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa

from core.config import Config
from core.encryption.gateway import CryptoGateway, KeyInfo
from core.encryption.keyring import KeyringGateway, key_fingerprint
from core.errors import DecryptionFailed, EncryptionFailed
from core.vault.manager import Vault, init_vault


@pytest.fixture(autouse=True, scope="session")
def load_test_env():
    """
    Automatically load environment variables from `.env.test` for all test sessions.
    """
    env_path = Path(".env.test")
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=True)
        print("📦 Test environment loaded from .env.test")
    else:
        print("⚠️  No .env.test file found. Using default environment.")


@pytest.fixture(scope="session")
def rsa_keys():
    """Two RSA keys, generated once: key generation dominates test time otherwise."""
    return [rsa.generate_private_key(public_exponent=65537, key_size=2048) for _ in range(2)]


def write_key(keyring: Path, filename: str, private_key, **sidecar) -> str:
    keyring.mkdir(parents=True, exist_ok=True)
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    (keyring / f"{filename}.pem").write_bytes(pem)
    if sidecar:
        (keyring / f"{filename}.json").write_text(json.dumps(sidecar))
    return key_fingerprint(private_key)


@pytest.fixture
def keyring(tmp_path, rsa_keys, monkeypatch):
    """
    A keyring with one usable RSA key ("primary"), a second RSA key ("other") and
    a signing-only Ed25519 key ("signer"). Returns the directory and fingerprints.
    """
    keyring_dir = tmp_path / "keyring"
    fingerprints = {
        "primary": write_key(
            keyring_dir, "primary", rsa_keys[0], name="Dark Matter", email="dm@example.org"
        ),
        "other": write_key(keyring_dir, "other", rsa_keys[1]),
        "signer": write_key(keyring_dir, "signer", ed25519.Ed25519PrivateKey.generate()),
    }
    monkeypatch.setattr(Config, "KEYRING_DIR", str(keyring_dir))
    monkeypatch.setattr(Config, "CRYPTO_BACKEND", "keyring")
    monkeypatch.setattr(Config, "VALIDATE_POLICY", "always")
    return keyring_dir, fingerprints


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Working directory holding the plaintext files, separate from the vault."""
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    return work


@pytest.fixture
def vault_root(tmp_path, monkeypatch):
    root = tmp_path / "vault"
    monkeypatch.setattr(Config, "VAULT_ROOT", str(root))
    return root


@pytest.fixture
def vault(keyring, vault_root, workdir):
    keyring_dir, fingerprints = keyring
    init_vault(str(vault_root), fingerprints["primary"], KeyringGateway(keyring_dir))
    opened = Vault.open(str(vault_root), KeyringGateway(keyring_dir))
    yield opened
    opened.close()


class FakeGateway(CryptoGateway):
    """
    Reversible stand-in for a real backend with switchable failures.
    """

    FINGERPRINT = "FA1E" * 16

    def __init__(self, keys: List[KeyInfo] = None):
        self.keys = keys if keys is not None else [
            KeyInfo(fingerprint=self.FINGERPRINT, algorithm="FAKE", can_encrypt=True, can_sign=True)
        ]
        self.fail_encrypt = False
        self.fail_decrypt = False
        self.encrypt_calls = 0
        self.decrypt_calls = 0

    def list_keys(self):
        return self.keys

    def encrypt(self, plaintext, key_id):
        self.encrypt_calls += 1
        if self.fail_encrypt:
            raise EncryptionFailed(f"key {key_id}", "injected failure")
        return b"FAKE:" + plaintext[::-1]

    def decrypt(self, ciphertext, key_id):
        self.decrypt_calls += 1
        if self.fail_decrypt or not ciphertext.startswith(b"FAKE:"):
            raise DecryptionFailed(f"key {key_id}", "injected failure")
        return ciphertext[len(b"FAKE:"):][::-1]


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def fake_vault(vault_root, workdir, fake_gateway, monkeypatch):
    monkeypatch.setattr(Config, "VALIDATE_POLICY", "always")
    init_vault(str(vault_root), FakeGateway.FINGERPRINT, fake_gateway)
    opened = Vault.open(str(vault_root), fake_gateway)
    yield opened
    opened.close()
