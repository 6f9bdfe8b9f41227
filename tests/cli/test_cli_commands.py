import json

import pytest
from dotenv import dotenv_values
from typer.testing import CliRunner

from cli.__main__ import app
from core.config import env_file
from core.errors import EXIT_IO, EXIT_KEY, EXIT_LOOKUP
from core.vault.lock import vault_lock

# Wide console so rich does not wrap long temporary paths
runner = CliRunner(env={"COLUMNS": "200"})


def output(result):
    return " ".join(result.output.split())


@pytest.fixture
def cli(keyring, vault_root, workdir):
    """Invoke the app against the temporary vault."""
    def invoke(*args):
        return runner.invoke(app, ["--vault", str(vault_root), *args])

    return invoke


@pytest.fixture
def initialized(cli, keyring):
    _, fingerprints = keyring
    result = cli("init", fingerprints["primary"])
    assert result.exit_code == 0, result.output
    return cli


def test_init_then_init_again(cli, keyring, vault_root):
    _, fingerprints = keyring

    result = cli("init", fingerprints["primary"])
    assert result.exit_code == 0
    assert "Vault initialized with key:" in output(result)
    assert fingerprints["primary"] in output(result)

    result = cli("init", fingerprints["primary"])
    assert result.exit_code == EXIT_LOOKUP
    assert "already exists" in output(result)


def test_init_with_signing_only_key(cli, keyring, vault_root):
    _, fingerprints = keyring

    result = cli("init", fingerprints["signer"])

    assert result.exit_code == EXIT_KEY
    assert "signing-only" in output(result)
    assert not vault_root.exists()


def test_add_update_export_restores_content(initialized, workdir):
    report = workdir / "report.txt"
    report.write_text("first draft")

    result = initialized("file", "add", "report.txt")
    assert result.exit_code == 0
    assert "successfully added to vault" in output(result)

    report.write_text("final draft")
    result = initialized("file", "update", "report.txt")
    assert result.exit_code == 0
    assert "successfully updated to version 2" in output(result)

    report.write_text("local edits to discard")
    result = initialized("file", "export", "report.txt", "--assumeYes")
    assert result.exit_code == 0
    assert "exported" in output(result)
    assert report.read_text() == "final draft"


def test_export_without_confirmation_fails_when_not_interactive(initialized, workdir):
    (workdir / "notes.txt").write_text("notes")
    initialized("file", "add", "notes.txt", "--name", "notes")

    result = initialized("file", "export", "notes")

    assert result.exit_code == EXIT_LOOKUP
    assert "already exists" in output(result)


def test_export_version_to_output(initialized, workdir):
    notes = workdir / "notes.txt"
    notes.write_text("v1")
    initialized("file", "add", "notes.txt", "--name", "notes")
    notes.write_text("v2")
    initialized("file", "update", "notes")

    result = initialized("file", "export", "notes", "--version", "1", "-o", "old.txt")

    assert result.exit_code == 0
    assert (workdir / "old.txt").read_text() == "v1"


def test_file_list_history_and_remove(initialized, workdir):
    (workdir / "notes.txt").write_text("notes")

    result = initialized("file", "list")
    assert "Vault is empty" in output(result)

    initialized("file", "add", "notes.txt", "--name", "notes")
    initialized("file", "update", "notes")

    result = initialized("file", "list")
    assert result.exit_code == 0
    assert "notes" in output(result)
    assert "Total: 1 file(s)" in output(result)

    result = initialized("file", "history", "notes")
    assert result.exit_code == 0
    assert "5 bytes" in output(result)

    result = initialized("file", "remove", "notes")
    assert result.exit_code == 0
    assert "successfully removed from vault (2 version(s))" in output(result)

    result = initialized("file", "remove", "notes")
    assert result.exit_code == EXIT_LOOKUP
    assert "not found in vault" in output(result)


def test_add_missing_source_is_io_error(initialized):
    result = initialized("file", "add", "missing.txt")

    assert result.exit_code == EXIT_IO
    assert "source file not found" in output(result)


def test_secret_scenario(initialized):
    result = initialized("secret", "add", "api_key", "12345", "--tags", "prod,api")
    assert result.exit_code == 0

    result = initialized("secret", "show", "api_key")
    assert result.exit_code == 0
    assert "12345" in result.output

    result = initialized("secret", "list", "--tags", "prod")
    assert "api_key" in output(result)

    result = initialized("secret", "list", "--tags", "dev")
    assert "api_key" not in output(result)
    assert "No secrets found in vault" in output(result)


def test_secret_update_and_remove(initialized):
    initialized("secret", "add", "token", "old", "-t", "prod")

    result = initialized("secret", "update", "token", "new")
    assert result.exit_code == 0
    assert "successfully updated" in output(result)
    assert "prod" in output(initialized("secret", "list"))
    assert "new" in initialized("secret", "show", "token").output

    result = initialized("secret", "remove", "token")
    assert result.exit_code == 0

    result = initialized("secret", "show", "token")
    assert result.exit_code == EXIT_LOOKUP

    result = initialized("secret", "update", "token", "x")
    assert result.exit_code == EXIT_LOOKUP


def test_secret_add_duplicate(initialized):
    initialized("secret", "add", "token", "a")

    result = initialized("secret", "add", "token", "b")

    assert result.exit_code == EXIT_LOOKUP
    assert "already exists" in output(result)


def test_validate_unknown_key_changes_nothing(initialized, vault_root):
    before = sorted(p.name for p in vault_root.rglob("*"))

    result = initialized("keys", "validate", "DEADBEEF")

    assert result.exit_code == EXIT_KEY
    assert "Status: NotFound" in output(result)
    assert sorted(p.name for p in vault_root.rglob("*")) == before


def test_validate_keys(cli, keyring):
    _, fingerprints = keyring

    result = cli("keys", "validate", fingerprints["primary"][:12])
    assert result.exit_code == 0
    assert "Status: Valid" in output(result)
    assert "Encryption successful" in output(result)
    assert "dm@example.org" in output(result)

    result = cli("keys", "validate", fingerprints["signer"])
    assert result.exit_code == EXIT_KEY
    assert "Status: Unusable" in output(result)


def test_keys_list(cli, keyring):
    _, fingerprints = keyring

    result = cli("keys", "list")

    assert result.exit_code == 0
    for fingerprint in fingerprints.values():
        assert fingerprint[:16] in output(result)


def test_concurrent_add_one_wins(initialized, vault_root, workdir):
    (workdir / "report.txt").write_text("numbers")

    with vault_lock(vault_root, exclusive=True):
        result = initialized("file", "add", "report.txt", "--name", "report")
    assert result.exit_code == EXIT_IO
    assert "busy" in output(result)

    assert initialized("file", "add", "report.txt", "--name", "report").exit_code == 0
    result = initialized("file", "add", "report.txt", "--name", "report")
    assert result.exit_code == EXIT_LOOKUP


def test_commands_need_a_vault(cli):
    result = cli("file", "list")

    assert result.exit_code == EXIT_LOOKUP
    assert "No vault found" in output(result)


def test_vault_status_and_audit(initialized, workdir, vault_root):
    (workdir / "notes.txt").write_text("notes")
    initialized("file", "add", "notes.txt", "--name", "notes")
    initialized("secret", "add", "token", "value")

    result = initialized("vault", "status")
    assert result.exit_code == 0
    assert "dark-matter Vault Status" in output(result)
    assert "Files: 1 (1 versions)" in output(result)
    assert "Secrets: 1" in output(result)

    result = initialized("vault", "audit")
    assert result.exit_code == 0
    assert "Vault is consistent" in output(result)

    (vault_root / "blobs" / f"{'a' * 32}.enc").write_bytes(b"stray")
    result = initialized("vault", "audit")
    assert result.exit_code == EXIT_IO
    assert "Orphan blob" in output(result)

    result = initialized("vault", "audit", "--repair")
    assert result.exit_code == 0
    assert "deleted orphan blob" in output(result)


def test_config_show_and_set(cli, workdir):
    result = cli("config", "show")
    assert result.exit_code == 0
    assert "Current Configuration" in output(result)
    assert "Keyring Directory" in output(result)

    result = cli("config", "set", "DM_LOG_LEVEL", "DEBUG")
    assert result.exit_code == 0
    assert "DM_LOG_LEVEL" in (workdir / ".env").read_text()


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "dark-matter" in result.output


def test_keys_generate(cli, keyring):
    keyring_dir, fingerprints = keyring

    result = cli("keys", "generate", "--name", "Ada", "--bits", "2048")

    assert result.exit_code == 0
    assert "Key generated:" in output(result)
    assert len(list(keyring_dir.glob("*.pem"))) == len(fingerprints) + 1


def test_config_set_rejects_unknown_policy(cli, workdir):
    result = cli("config", "set", "DM_VALIDATE_POLICY", "sometimes")

    assert result.exit_code == 1
    assert not (workdir / ".env").exists()


def test_config_set_is_found_from_a_subdirectory(cli, workdir, monkeypatch):
    result = cli("config", "set", "DM_DB_NAME", "other.db")
    assert result.exit_code == 0

    nested = workdir / "projects" / "reports"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert env_file().resolve() == (workdir / ".env").resolve()
    result = cli("config", "set", "DM_LOG_LEVEL", "INFO")
    assert result.exit_code == 0
    assert not (nested / ".env").exists()
    assert dotenv_values(env_file()) == {"DM_DB_NAME": "other.db", "DM_LOG_LEVEL": "INFO"}


def test_bad_sidecar_date_does_not_break_validation(cli, keyring):
    keyring_dir, fingerprints = keyring
    (keyring_dir / "other.json").write_text(json.dumps({"expires_at": "2030-01-01T00:00:00Z-bad"}))

    result = cli("keys", "validate", fingerprints["primary"])

    assert result.exit_code == 0
    assert "Status: Valid" in output(result)


def test_init_where_the_root_cannot_be_created(keyring, workdir):
    _, fingerprints = keyring
    (workdir / "blocker").write_text("a file, not a directory")

    result = runner.invoke(app, ["--vault", str(workdir / "blocker" / "vault"), "init", fingerprints["primary"]])

    assert result.exit_code == EXIT_IO
    assert "I/O error" in output(result)
