"""
Master Key Management
=====================

Resolves the single vault master key: retrieve it from the key store,
or generate one and persist it before handing it out.

A key is never returned unless it is durably stored, since a key used
but not persisted would make the vault unreadable after a restart.
"""

from __future__ import annotations

import logging
import threading
from typing import Final, Optional

from securevault.core.crypto.aes_gcm import AES_KEY_SIZE, AesGcmCipher
from securevault.core.errors import (
    KeyPersistError,
    KeyStoreError,
)
from securevault.core.keys.keystore import KeyStore

MASTER_KEY_NAME: Final[str] = "masterKey"


class KeyManager:
    """
    Retrieve-or-create access to the vault master key.

    Usage:
        manager = KeyManager(FileKeyStore(config_dir / "keystore"))
        key = manager.resolve_master_key()
        store.initialize(key)

    Security Notes:
        - Resolution is serialized; concurrent callers see the same key
        - A stored value of the wrong size is rejected, never used
    """

    __slots__ = ("_keystore", "_cipher", "_key_name", "_lock", "_log")

    def __init__(
        self,
        keystore: KeyStore,
        cipher: Optional[AesGcmCipher] = None,
        key_name: str = MASTER_KEY_NAME,
    ) -> None:
        self._keystore = keystore
        self._cipher = cipher or AesGcmCipher()
        self._key_name = key_name
        self._lock = threading.Lock()
        self._log = logging.getLogger("securevault.keys")

    @property
    def key_name(self) -> str:
        return self._key_name

    def has_master_key(self) -> bool:
        """Check whether a master key has already been stored."""
        try:
            return self._keystore.get(self._key_name) is not None
        except KeyStoreError as exc:
            raise KeyPersistError("Cannot read vault key") from exc

    def resolve_master_key(self) -> bytes:
        """
        Return the stored master key, creating and persisting it if absent.

        Returns:
            32-byte master key

        Raises:
            KeyPersistError: If the key cannot be read back or stored
        """
        with self._lock:
            try:
                existing = self._keystore.get(self._key_name)
            except KeyStoreError as exc:
                raise KeyPersistError("Cannot read vault key") from exc

            if existing is not None:
                if len(existing) != AES_KEY_SIZE:
                    self._log.error("Stored master key has invalid size")
                    raise KeyPersistError("Stored vault key is invalid")
                return bytes(existing)

            key = self._cipher.generate_key()
            try:
                self._keystore.put(self._key_name, key)
            except KeyStoreError as exc:
                self._log.error("Could not persist new master key")
                raise KeyPersistError() from exc

            self._log.info("Generated and stored new master key")
            return key

    def discard_master_key(self) -> None:
        """
        Delete the master key from the key store.

        Only used for a full vault reset: every row written under the
        old key becomes unreadable.
        """
        with self._lock:
            self._keystore.delete(self._key_name)
        self._log.warning("Master key discarded")

    def __repr__(self) -> str:
        return f"KeyManager(key_name={self._key_name!r}, keystore={self._keystore!r})"
