"""
Key management - master key lifecycle and secret storage.
"""

from securevault.core.keys.keystore import (
    KeyStore,
    FileKeyStore,
    MemoryKeyStore,
)
from securevault.core.keys.key_manager import KeyManager, MASTER_KEY_NAME

__all__ = [
    "KeyStore",
    "FileKeyStore",
    "MemoryKeyStore",
    "KeyManager",
    "MASTER_KEY_NAME",
]
