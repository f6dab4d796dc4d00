"""
Secret Key Stores
=================

Durable holders for named secrets (the vault master key).

Contract:
    get(name)    -> bytes or None when absent
    put(name, b) -> raises KeyStoreWriteError on failure
    delete(name) -> raises KeyStoreDeleteError on failure (absent is fine)

Once put() returns, get() with the same name returns the same bytes until
the next put()/delete(), including after a process restart.

Production deployments plug in an OS credential vault by subclassing
KeyStore; FileKeyStore and MemoryKeyStore are provided here.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Final, Optional

from securevault.core.errors import (
    KeyStoreDeleteError,
    KeyStoreError,
    KeyStoreWriteError,
)
from securevault.utils.paths import (
    ensure_private_dir,
    sanitize_filename,
    write_file_atomic,
)

SECRET_FILE_SUFFIX: Final[str] = ".secret"


class KeyStore(ABC):
    """Abstract holder of named secrets."""

    @abstractmethod
    def get(self, name: str) -> Optional[bytes]:
        """Return the secret stored under name, or None."""

    @abstractmethod
    def put(self, name: str, data: bytes) -> None:
        """Durably store data under name, replacing any previous value."""

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove the secret stored under name. Absent names are ignored."""


class MemoryKeyStore(KeyStore):
    """
    Process-local key store.

    Durability only spans the lifetime of the instance; share one instance
    to simulate restarts in tests.
    """

    __slots__ = ("_secrets", "_lock")

    def __init__(self) -> None:
        self._secrets: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> Optional[bytes]:
        with self._lock:
            return self._secrets.get(name)

    def put(self, name: str, data: bytes) -> None:
        with self._lock:
            self._secrets[name] = bytes(data)

    def delete(self, name: str) -> None:
        with self._lock:
            self._secrets.pop(name, None)

    def __repr__(self) -> str:
        """Safe representation without secret values."""
        return f"MemoryKeyStore(names={sorted(self._secrets)!r})"


class FileKeyStore(KeyStore):
    """
    Key store keeping one owner-only file per secret.

    Security Notes:
        - Directory is created with 0700 permissions
        - Secret files are written atomically with 0600 permissions
        - Intended for hosts without an OS credential vault; the secret
          is only as protected as the user's account
    """

    __slots__ = ("_directory", "_lock", "_log")

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)
        self._lock = threading.Lock()
        self._log = logging.getLogger("securevault.keystore")

    @property
    def directory(self) -> Path:
        return self._directory

    def _path_for(self, name: str) -> Path:
        return self._directory / f"{sanitize_filename(name)}{SECRET_FILE_SUFFIX}"

    def get(self, name: str) -> Optional[bytes]:
        path = self._path_for(name)
        with self._lock:
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None
            except OSError as exc:
                raise KeyStoreError(f"Cannot read secret {name!r}") from exc

    def put(self, name: str, data: bytes) -> None:
        path = self._path_for(name)
        with self._lock:
            try:
                ensure_private_dir(self._directory)
                write_file_atomic(path, bytes(data))
            except OSError as exc:
                self._log.error("Failed to store secret %r", name)
                raise KeyStoreWriteError(f"Cannot store secret {name!r}") from exc
        self._log.debug("Stored secret %r", name)

    def delete(self, name: str) -> None:
        path = self._path_for(name)
        with self._lock:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                raise KeyStoreDeleteError(f"Cannot delete secret {name!r}") from exc
        self._log.debug("Deleted secret %r", name)

    def __repr__(self) -> str:
        return f"FileKeyStore(directory={str(self._directory)!r})"
