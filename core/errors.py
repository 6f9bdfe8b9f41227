"""
Errors - Exception taxonomy shared by the vault engine, the secret store and the CLI.

Every error carries an ``exit_code`` so the command line can report the broad class
of failure without knowing each concrete type:

- 2: lookup failures (missing or duplicate names, export conflicts)
- 3: key and cryptography failures
- 4: storage, filesystem and lock failures
"""

EXIT_LOOKUP = 2
EXIT_KEY = 3
EXIT_IO = 4


class VaultError(Exception):
    """Base class for every failure the engine surfaces to its caller."""

    exit_code = 1


# Lookup class

class NotFound(VaultError):
    exit_code = EXIT_LOOKUP


class VaultNotFound(NotFound):
    def __init__(self, root):
        self.root = root
        super().__init__(
            f"No vault found at {root}. Run 'dark-matter init <key_id>' to create one."
        )


class FileNotTracked(NotFound):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"File '{name}' not found in vault")


class VersionNotFound(NotFound):
    def __init__(self, name: str, version: int):
        self.name = name
        self.version = version
        super().__init__(f"File '{name}' has no version {version}")


class SecretNotFound(NotFound):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Secret '{name}' not found in vault")


class AlreadyExists(VaultError):
    exit_code = EXIT_LOOKUP


class AlreadyInitialized(AlreadyExists):
    def __init__(self, root):
        self.root = root
        super().__init__(
            f"A vault already exists at {root}. Remove it or use a different directory."
        )


class FileAlreadyTracked(AlreadyExists):
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"File '{name}' already exists in vault. Use 'file update' to add a new version."
        )


class SecretAlreadyExists(AlreadyExists):
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Secret '{name}' already exists in vault. Use 'secret update' to change it."
        )


class DestinationExists(VaultError):
    exit_code = EXIT_LOOKUP

    def __init__(self, path):
        self.path = path
        super().__init__(f"Destination '{path}' already exists. Use --yes to overwrite it.")


# Key class

class CryptoError(VaultError):
    """Base for key validation and cryptography failures."""

    exit_code = EXIT_KEY


class InvalidKey(CryptoError):
    def __init__(self, key_id: str, reason: str = "key is not valid for encryption"):
        self.key_id = key_id
        self.reason = reason
        super().__init__(f"Key '{key_id}': {reason}")


class KeyNotFound(InvalidKey):
    def __init__(self, key_id: str):
        super().__init__(key_id, "not found in keyring")


class KeyUnusable(InvalidKey):
    def __init__(self, key_id: str, reason: str = "cannot be used for encryption"):
        super().__init__(key_id, reason)


class AmbiguousKey(InvalidKey):
    def __init__(self, key_id: str, candidates=()):
        self.candidates = list(candidates)
        detail = ", ".join(self.candidates)
        super().__init__(key_id, f"prefix matches more than one key ({detail})")


class EncryptionFailed(CryptoError):
    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Encryption failed for '{target}': {reason}")


class DecryptionFailed(CryptoError):
    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Decryption failed for '{target}': {reason}")


# I/O class

class StorageError(VaultError):
    exit_code = EXIT_IO


class IoError(VaultError):
    exit_code = EXIT_IO

    def __init__(self, path, reason: str):
        self.path = path
        super().__init__(f"I/O error on '{path}': {reason}")


class SourceNotFound(IoError):
    def __init__(self, path):
        super().__init__(path, "source file not found or unreadable")


class VaultBusy(VaultError):
    exit_code = EXIT_IO

    def __init__(self, root):
        self.root = root
        super().__init__(
            f"Vault at {root} is busy: another dark-matter command holds its lock"
        )
