"""
Encryption Service - Envelope encryption of payloads for one asymmetric key pair.
"""

import struct
import zlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

# Magic header for identifying dark-matter envelopes
MAGIC_HEADER = b"DMVAULTv1\n"

# Length prefix of the wrapped data key
_WRAPPED_LEN = struct.Struct(">H")

OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


class EncryptionService:
    """
    EncryptionService seals payloads with a fresh Fernet (AES) data key per payload,
    compressed before encryption, and wraps that data key with RSA-OAEP for the
    recipient key. Only the holder of the private key can open the envelope.
    """

    def __init__(
        self,
        public_key: rsa.RSAPublicKey,
        private_key: Optional[rsa.RSAPrivateKey] = None,
    ):
        self.public_key = public_key
        self.private_key = private_key

    def encrypt_bytes(self, data: bytes) -> bytes:
        """
        Compress and encrypt raw bytes into a self-contained envelope.

        Args:
            data (bytes): The data to encrypt

        Returns:
            bytes: Magic header, wrapped data key and Fernet token
        """
        data_key = Fernet.generate_key()
        wrapped_key = self.public_key.encrypt(data_key, OAEP)

        # Compress data before encryption for better storage efficiency
        token = Fernet(data_key).encrypt(zlib.compress(data, level=9))

        return MAGIC_HEADER + _WRAPPED_LEN.pack(len(wrapped_key)) + wrapped_key + token

    def decrypt_bytes(self, envelope: bytes) -> bytes:
        """
        Open an envelope produced by ``encrypt_bytes``.

        Args:
            envelope (bytes): Sealed payload

        Returns:
            bytes: The decrypted and decompressed data

        Raises:
            ValueError: If the header is missing, the data key cannot be unwrapped
                or the token fails its integrity check
        """
        if self.private_key is None:
            raise ValueError("Private key not available for decryption")

        if not envelope.startswith(MAGIC_HEADER):
            raise ValueError("Invalid or missing dark-matter magic header")

        body = envelope[len(MAGIC_HEADER):]
        if len(body) < _WRAPPED_LEN.size:
            raise ValueError("Truncated envelope")

        (wrapped_len,) = _WRAPPED_LEN.unpack_from(body)
        wrapped_key = body[_WRAPPED_LEN.size:_WRAPPED_LEN.size + wrapped_len]
        token = body[_WRAPPED_LEN.size + wrapped_len:]
        if len(wrapped_key) != wrapped_len or not token:
            raise ValueError("Truncated envelope")

        try:
            data_key = self.private_key.decrypt(wrapped_key, OAEP)
        except ValueError:
            raise ValueError("Data key cannot be unwrapped with this private key")

        try:
            compressed = Fernet(data_key).decrypt(token)
        except InvalidToken:
            raise ValueError("Integrity check failed: envelope was tampered with")

        return zlib.decompress(compressed)
