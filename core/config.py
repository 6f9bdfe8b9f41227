import os
from pathlib import Path
from dotenv import find_dotenv, load_dotenv


def env_file() -> Path:
    """The .env file in use: the nearest one at or above the working directory."""
    found = find_dotenv(usecwd=True)
    return Path(found) if found else Path.cwd() / ".env"


load_dotenv(env_file())

class Config:
    VAULT_ROOT = os.getenv("DM_VAULT_ROOT", ".")
    DB_NAME = os.getenv("DM_DB_NAME", "dm-vault.db")
    BLOB_DIR = "blobs"
    LOCK_FILE = ".dm-vault.lock"
    LAYOUT_VERSION = 1

    # Crypto backend
    CRYPTO_BACKEND = os.getenv("DM_CRYPTO_BACKEND", "keyring")
    KEYRING_DIR = os.getenv("DM_KEYRING_DIR", "~/.dark-matter/keyring")
    # "always": check the key before every mutation, "init": only when binding it
    VALIDATE_POLICY = os.getenv("DM_VALIDATE_POLICY", "always")

    LOG_FILE = os.getenv("DM_LOG_FILE", "")
    LOG_LEVEL = os.getenv("DM_LOG_LEVEL", "WARNING")
