"""
SecureVault Error Taxonomy
==========================

Every failure the persistence engine can surface derives from
SecureVaultError so callers can present a single generic message.

Security Notes:
- Messages never contain plaintext, ciphertext or key material
- Decryption failures are never reported as "not found"
"""

from __future__ import annotations


class SecureVaultError(Exception):
    """Base class for all vault errors."""
    pass


class NotInitializedError(SecureVaultError):
    """Raised when the store is used before initialize() succeeded."""

    def __init__(self, message: str = "Vault store is not initialized") -> None:
        super().__init__(message)


class KeyStoreError(SecureVaultError):
    """Raised when the secret store cannot be accessed."""
    pass


class KeyStoreWriteError(KeyStoreError):
    """Raised when a secret cannot be durably written."""
    pass


class KeyStoreDeleteError(KeyStoreError):
    """Raised when a secret cannot be removed."""
    pass


class KeyPersistError(SecureVaultError):
    """
    Raised when the master key cannot be secured.

    Fatal to startup. A key that was not durably stored is never returned.
    """

    def __init__(self, message: str = "Cannot secure vault key") -> None:
        super().__init__(message)


class DuplicateIdError(SecureVaultError):
    """Raised when inserting a record whose id already exists."""

    def __init__(self, record_id: object) -> None:
        self.record_id = record_id
        super().__init__(f"Record already exists: {record_id}")


class RecordNotFoundError(SecureVaultError):
    """Raised when updating a record that does not exist."""

    def __init__(self, record_id: object) -> None:
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


class InvalidRecordError(SecureVaultError, ValueError):
    """Raised when a record violates a model invariant."""
    pass


class AuthenticationFailed(SecureVaultError):
    """
    Raised by the cipher when a ciphertext does not verify.

    Covers tampering, truncation and decryption under the wrong key.
    Retrying with the same key and bytes cannot succeed.
    """

    def __init__(self, message: str = "Ciphertext failed authentication") -> None:
        super().__init__(message)


class EncryptionFailure(SecureVaultError):
    """Raised when encryption cannot be performed (e.g. RNG failure)."""
    pass


class CorruptStoreError(SecureVaultError):
    """Raised when stored data fails authentication or cannot be decoded."""
    pass


class WrongKeyError(CorruptStoreError):
    """Raised when the supplied key cannot open an existing store."""

    def __init__(self, message: str = "Key does not match the existing vault") -> None:
        super().__init__(message)


class StorageUnavailableError(SecureVaultError):
    """Raised on I/O failures opening or writing the store file."""
    pass


class NoDataError(SecureVaultError):
    """Raised when exporting a store file that does not exist."""

    def __init__(self, message: str = "No vault data to export") -> None:
        super().__init__(message)
