"""
Key Derivation Functions
========================

Deterministic derivation of fixed-size keys from caller-supplied input.

The vault master key is random (see AesGcmCipher.generate_key); these
helpers exist for fallback paths where a key has to be recomputed from
a known secret.
"""

from __future__ import annotations

from typing import Final

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

DERIVED_KEY_SIZE: Final[int] = 32


def _as_bytes(value: str | bytes) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def derive_key_sha256(passphrase: str | bytes) -> bytes:
    """
    Derive a 256-bit key as the SHA-256 digest of the input.

    Args:
        passphrase: Arbitrary text or bytes

    Returns:
        32-byte digest
    """
    digest = hashes.Hash(hashes.SHA256())
    digest.update(_as_bytes(passphrase))
    return digest.finalize()


def expand_key_hkdf(
    key_material: bytes,
    info: bytes,
    length: int = DERIVED_KEY_SIZE,
    salt: bytes | None = None,
) -> bytes:
    """
    Expand key material into a purpose-bound subkey using HKDF-SHA256.

    Args:
        key_material: Input key material
        info: Context string binding the subkey to its purpose
        length: Output length
        salt: Optional salt

    Returns:
        Derived subkey bytes
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info,
    )
    return hkdf.derive(key_material)
