from cryptography.hazmat.primitives import hashes


def hash_bytes(data: bytes) -> str:
    """
    Compute the SHA256 hash of an in-memory payload.

    Args:
        data (bytes): Plaintext content.

    Returns:
        str: SHA256 hash as hex string.
    """
    digest = hashes.Hash(hashes.SHA256())
    digest.update(data)
    return digest.finalize().hex()
