"""
AES-256-GCM Authenticated Encryption
====================================

Implements the field cipher used for every encrypted vault column.

Security Properties:
    - 256-bit key (128-bit security level)
    - 96-bit random nonce per encryption (NIST recommended)
    - 128-bit authentication tag
    - Authenticated Additional Data (AAD) support

Combined Format:
    NONCE (12) | CIPHERTEXT (n) | TAG (16)

    The nonce travels with the ciphertext so the storage layer can treat
    every encrypted field as one opaque blob.

WARNING:
    - Never reuse (key, nonce) pairs
    - No plaintext is returned unless the tag verifies
"""

from __future__ import annotations

import hmac
import secrets
from typing import Final, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from securevault.core.crypto.kdf import derive_key_sha256
from securevault.core.errors import AuthenticationFailed, EncryptionFailure

# Constants following NIST recommendations
AES_KEY_SIZE: Final[int] = 32  # 256 bits
AES_NONCE_SIZE: Final[int] = 12  # 96 bits (NIST recommended for GCM)
AES_TAG_SIZE: Final[int] = 16  # 128 bits
MIN_COMBINED_SIZE: Final[int] = AES_NONCE_SIZE + AES_TAG_SIZE


def _check_key(key: bytes) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != AES_KEY_SIZE:
        raise ValueError(f"Key must be exactly {AES_KEY_SIZE} bytes")


class AesGcmCipher:
    """
    Stateless AES-256-GCM cipher producing self-describing ciphertexts.

    Usage:
        cipher = AesGcmCipher()
        key = cipher.generate_key()

        blob = cipher.encrypt(b"secret", key, aad=b"context")
        plaintext = cipher.decrypt(blob, key, aad=b"context")

    Security Notes:
        - A fresh nonce is drawn from the OS CSPRNG on every call
        - Any modified byte makes decrypt() raise AuthenticationFailed
    """

    __slots__ = ()

    @staticmethod
    def generate_key() -> bytes:
        """
        Generate a cryptographically secure random AES-256 key.

        Returns:
            32 bytes of cryptographic random data
        """
        return secrets.token_bytes(AES_KEY_SIZE)

    @staticmethod
    def generate_nonce() -> bytes:
        """Generate a random 96-bit nonce."""
        return secrets.token_bytes(AES_NONCE_SIZE)

    @staticmethod
    def derive_key(passphrase: str | bytes) -> bytes:
        """
        Derive a fixed-size key from arbitrary input with SHA-256.

        Fallback derivation only; the master key is always generated
        with generate_key().
        """
        return derive_key_sha256(passphrase)

    def encrypt(
        self,
        plaintext: bytes,
        key: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Encrypt plaintext using AES-256-GCM.

        Args:
            plaintext: Data to encrypt (can be empty)
            key: 32-byte key
            aad: Additional Authenticated Data (authenticated but not encrypted)

        Returns:
            Combined nonce + ciphertext + tag

        Raises:
            ValueError: If key is the wrong size
            EncryptionFailure: If the random source or primitive fails
        """
        _check_key(key)

        try:
            nonce = self.generate_nonce()
            ciphertext = AESGCM(bytes(key)).encrypt(nonce, plaintext, aad)
        except (OSError, OverflowError, TypeError) as exc:
            raise EncryptionFailure("AES-GCM encryption failed") from exc

        return nonce + ciphertext

    def decrypt(
        self,
        combined: bytes,
        key: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Decrypt a combined ciphertext with integrity verification.

        Args:
            combined: Nonce + ciphertext + tag as produced by encrypt()
            key: The 32-byte encryption key
            aad: Additional Authenticated Data (must match encryption AAD)

        Returns:
            Decrypted plaintext bytes

        Raises:
            ValueError: If key is the wrong size
            AuthenticationFailed: If the buffer is malformed or does not verify
        """
        _check_key(key)

        if not isinstance(combined, (bytes, bytearray, memoryview)):
            raise AuthenticationFailed("Ciphertext is not a byte buffer")
        combined = bytes(combined)
        if len(combined) < MIN_COMBINED_SIZE:
            raise AuthenticationFailed("Ciphertext too short")

        nonce = combined[:AES_NONCE_SIZE]
        body = combined[AES_NONCE_SIZE:]

        try:
            return AESGCM(bytes(key)).decrypt(nonce, body, aad)
        except InvalidTag as exc:
            raise AuthenticationFailed() from exc

    @staticmethod
    def constant_time_compare(a: bytes, b: bytes) -> bool:
        """Constant-time comparison of two byte strings."""
        return hmac.compare_digest(a, b)
