import pytest

from core.encryption.gateway import KeyInfo, KeyStatus
from core.encryption.keyring import KeyringGateway
from core.errors import AmbiguousKey, KeyNotFound, KeyUnusable
from core.vault.gate import KeyValidationGate


def test_validate_reports_each_status(keyring):
    keyring_dir, fingerprints = keyring
    gate = KeyValidationGate(KeyringGateway(keyring_dir))

    assert gate.validate(fingerprints["primary"]).status == KeyStatus.VALID
    assert gate.validate(fingerprints["signer"]).status == KeyStatus.UNUSABLE
    assert gate.validate("F" * 64).status == KeyStatus.NOT_FOUND


def test_validate_has_no_side_effects(keyring):
    keyring_dir, fingerprints = keyring
    before = sorted(p.name for p in keyring_dir.iterdir())
    gate = KeyValidationGate(KeyringGateway(keyring_dir))

    for _ in range(3):
        gate.validate(fingerprints["primary"])
        gate.validate("unknown")

    assert sorted(p.name for p in keyring_dir.iterdir()) == before


def test_require_valid_returns_full_key_for_prefix(keyring):
    keyring_dir, fingerprints = keyring
    gate = KeyValidationGate(KeyringGateway(keyring_dir))

    key = gate.require_valid(fingerprints["primary"][:10])

    assert key.fingerprint == fingerprints["primary"]


def test_require_valid_raises_for_each_failure(fake_gateway):
    fake_gateway.keys = [
        KeyInfo("AAAA01", "FAKE", can_encrypt=True, can_sign=True),
        KeyInfo("AAAA02", "FAKE", can_encrypt=True, can_sign=True),
        KeyInfo("BBBB01", "FAKE", can_encrypt=False, can_sign=True),
    ]
    gate = KeyValidationGate(fake_gateway)

    with pytest.raises(KeyNotFound):
        gate.require_valid("CCCC")
    with pytest.raises(AmbiguousKey) as exc_info:
        gate.require_valid("AAAA")
    assert exc_info.value.candidates == ["AAAA01", "AAAA02"]
    with pytest.raises(KeyUnusable, match="signing-only"):
        gate.require_valid("BBBB01")


def test_report_reason(fake_gateway):
    fake_gateway.keys = [KeyInfo("BBBB01", "FAKE", can_encrypt=True, can_sign=True, revoked=True)]
    gate = KeyValidationGate(fake_gateway)

    assert gate.validate("BBBB01").reason == "key is revoked"
    assert gate.validate("CCCC").reason == "not found in keyring"
    assert gate.validate(fake_gateway.FINGERPRINT).key is None


def test_self_test(keyring, fake_gateway):
    keyring_dir, fingerprints = keyring

    assert KeyValidationGate(KeyringGateway(keyring_dir)).self_test(fingerprints["primary"]) is None

    fake_gateway.fail_encrypt = True
    assert "injected failure" in KeyValidationGate(fake_gateway).self_test(fake_gateway.FINGERPRINT)
