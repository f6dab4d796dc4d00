"""
SecureVault Cryptographic Core
==============================

Authenticated field encryption for the vault store.

Security Properties:
    - All encryption is authenticated (AES-256-GCM)
    - Fresh random nonce for every encryption
    - Constant-time comparisons for key checks
    - Secure RNG for all random values

WARNING: This module handles sensitive cryptographic material.
         Incorrect usage can compromise security.
"""

from securevault.core.crypto.aes_gcm import (
    AesGcmCipher,
    AES_KEY_SIZE,
    AES_NONCE_SIZE,
    AES_TAG_SIZE,
)
from securevault.core.crypto.kdf import derive_key_sha256, expand_key_hkdf

__all__ = [
    "AesGcmCipher",
    "AES_KEY_SIZE",
    "AES_NONCE_SIZE",
    "AES_TAG_SIZE",
    "derive_key_sha256",
    "expand_key_hkdf",
]
