import os

from core.config import Config
from core.encryption.gateway import CryptoGateway
from core.encryption.keyring import KeyringGateway


def get_gateway(name: str = None) -> CryptoGateway:
    name = name or Config.CRYPTO_BACKEND
    if name == "keyring":
        return KeyringGateway(Config.KEYRING_DIR, passphrase=os.getenv("DM_KEY_PASSPHRASE"))
    raise ValueError(f"Unknown crypto backend: {name}")
