"""
Vault Service
=============

Application-facing composition of the persistence engine.

The authentication gate calls unlock() after confirming the device owner;
the presentation layer reads `items` and calls the mutators. Components
are passed in explicitly, so tests can wire in-memory key stores.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import List, Optional

from securevault.core.config import SecureConfig
from securevault.core.errors import RecordNotFoundError
from securevault.core.keys import FileKeyStore, KeyManager
from securevault.db import codec
from securevault.db.codec import Entry
from securevault.db.models import Record, RecordKind
from securevault.db.vault_store import VaultStore


class Vault:
    """
    Unlocked view over the encrypted store.

    Usage:
        vault = Vault.open(SecureConfig.load())
        vault.unlock()
        record = vault.add(CredentialEntry(title="Bank", username="alice", password="p@ss"))
        vault.lock()

    Notes:
        - `items` mirrors the store after every successful call
        - Every call may block on disk I/O
    """

    __slots__ = ("_key_manager", "_store", "_items", "_log")

    def __init__(self, key_manager: KeyManager, store: VaultStore) -> None:
        self._key_manager = key_manager
        self._store = store
        self._items: List[Record] = []
        self._log = logging.getLogger("securevault.vault")

    @classmethod
    def open(cls, config: SecureConfig) -> "Vault":
        """Build a vault wired to the configured key store and data file."""
        config.ensure_directories()
        keystore = FileKeyStore(config.paths.config_dir / config.vault.keystore_dirname)
        key_manager = KeyManager(keystore, key_name=config.vault.master_key_name)
        store = VaultStore(config.paths.data_dir / config.vault.database_filename)
        return cls(key_manager, store)

    @property
    def store(self) -> VaultStore:
        return self._store

    @property
    def is_unlocked(self) -> bool:
        return self._store.is_initialized

    @property
    def items(self) -> List[Record]:
        return list(self._items)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def unlock(self) -> List[Record]:
        """
        Resolve the master key, open the store and load every record.

        Must only be called after the device owner was authenticated.
        """
        key = self._key_manager.resolve_master_key()
        self._store.initialize(key)
        return self.reload()

    def lock(self) -> None:
        """Drop the key and all decrypted records from memory."""
        self._store.close()
        self._items = []
        self._log.info("Vault locked")

    def reload(self) -> List[Record]:
        self._items = self._store.fetch_all()
        return self.items

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def get(self, record_id: uuid.UUID) -> Optional[Record]:
        return self._store.fetch_one(record_id)

    def add(self, entry: Entry, favorite: bool = False) -> Record:
        record = self._store.insert(codec.to_record(entry, favorite=favorite))
        self._items.append(record)
        return record

    def edit(self, record_id: uuid.UUID, entry: Entry) -> Record:
        """Replace an entry's content, keeping id, created_at and favorite."""
        current = self._store.fetch_one(record_id)
        if current is None:
            raise RecordNotFoundError(record_id)
        stored = self._store.update(codec.apply(current, entry))
        self._replace_item(stored)
        return stored

    def toggle_favorite(self, record_id: uuid.UUID) -> Record:
        current = self._store.fetch_one(record_id)
        if current is None:
            raise RecordNotFoundError(record_id)
        stored = self._store.set_favorite(record_id, not current.favorite)
        self._replace_item(stored)
        return stored

    def remove(self, record_id: uuid.UUID) -> None:
        self._store.delete(record_id)
        self._items = [item for item in self._items if item.id != record_id]

    def _replace_item(self, record: Record) -> None:
        self._items = [record if item.id == record.id else item for item in self._items]

    def search(self, query: str) -> List[Record]:
        """Case-insensitive match on title and content of loaded items."""
        if not query:
            return self.items
        needle = query.casefold()
        return [
            item for item in self._items
            if needle in item.title.casefold() or needle in item.content.casefold()
        ]

    def filter_by_kind(self, kind: Optional[RecordKind]) -> List[Record]:
        if kind is None:
            return self.items
        return [item for item in self._items if item.kind is kind]

    # ------------------------------------------------------------------
    # Export / import / reset
    # ------------------------------------------------------------------

    def export_vault(self, destination: Path | str) -> Path:
        return self._store.export_to(destination)

    def import_vault(self, source: Path | str) -> List[Record]:
        """
        Replace the store file from source and reload every record.

        A rejected import leaves the vault and `items` as they were.
        """
        self._store.import_from(source)
        return self.reload()

    def reset(self) -> None:
        """
        Erase every record and the master key, then lock.

        Irreversible. The next unlock() creates a fresh key.
        """
        self._store.delete_all()
        self._key_manager.discard_master_key()
        self.lock()
        self._log.warning("Vault reset")
