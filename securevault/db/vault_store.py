"""
Encrypted Vault Store
=====================

SQLite-backed persistence for vault records with per-field AES-256-GCM.

Security Properties:
- title, content and fields are encrypted individually with a fresh nonce
- Each blob is bound to its row id and column through AAD
- Only id, kind, timestamps and the favorite flag are stored in clear
- The master key is held in memory only while the store is ready
- A key check value detects a mismatched key at initialize time

State Machine:
    UNINITIALIZED --initialize(key)--> READY --close()--> UNINITIALIZED

Every record operation requires READY and fails with NotInitializedError
otherwise.
"""

from __future__ import annotations

import logging
import os
import shutil
import sqlite3
import tempfile
import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from enum import Enum, auto
from pathlib import Path
from typing import Final, Iterator, List, Optional, Tuple

from securevault.core.crypto.aes_gcm import AES_KEY_SIZE, AesGcmCipher
from securevault.core.crypto.kdf import expand_key_hkdf
from securevault.core.errors import (
    AuthenticationFailed,
    CorruptStoreError,
    DuplicateIdError,
    InvalidRecordError,
    NoDataError,
    NotInitializedError,
    RecordNotFoundError,
    StorageUnavailableError,
    WrongKeyError,
)
from securevault.db.codec import pack_fields, unpack_fields
from securevault.db.models import Record, RecordKind, utc_now
from securevault.utils.paths import ensure_private_dir

KEY_CHECK_NAME: Final[str] = "key_check"
KEY_CHECK_INFO: Final[bytes] = b"securevault-key-check-v1"

_COLUMNS: Final[str] = (
    "id, kind, title_ct, content_ct, fields_ct, created_at, modified_at, favorite"
)


class StoreState(Enum):
    UNINITIALIZED = auto()
    READY = auto()


def _format_timestamp(value: datetime) -> str:
    # Fixed-width UTC text sorts in chronological order
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError("Stored timestamp has no timezone")
    return parsed


def _id_text(record_id: uuid.UUID | str) -> str:
    try:
        return str(record_id if isinstance(record_id, uuid.UUID) else uuid.UUID(str(record_id)))
    except ValueError:
        raise InvalidRecordError(f"Invalid record id: {record_id!r}") from None


def _aad(record_id: str, column: str) -> bytes:
    try:
        return f"{record_id}:{column}".encode("ascii")
    except UnicodeEncodeError:
        raise CorruptStoreError(f"Stored record id is not a UUID: {record_id!r}") from None


class VaultStore:
    """
    The encrypted persistence engine.

    Usage:
        store = VaultStore(data_dir / "securevault.db")
        store.initialize(key_manager.resolve_master_key())

        store.insert(record)
        record = store.fetch_one(record.id)
        records = store.fetch_all()

    Concurrency:
        All operations are serialized by an internal lock and run in their
        own short-lived connection, committed before the lock is released.
        Calls may block on disk I/O; keep them off interactive threads.
    """

    __slots__ = ("_db_path", "_cipher", "_key", "_state", "_lock", "_log")

    _SCHEMA: Final[str] = """
    CREATE TABLE IF NOT EXISTS vault_items (
        id TEXT PRIMARY KEY,
        kind TEXT NOT NULL,
        title_ct BLOB NOT NULL,
        content_ct BLOB NOT NULL,
        fields_ct BLOB NOT NULL,
        created_at TEXT NOT NULL,
        modified_at TEXT NOT NULL,
        favorite INTEGER NOT NULL DEFAULT 0
    );

    CREATE INDEX IF NOT EXISTS idx_items_created ON vault_items(created_at);

    CREATE TABLE IF NOT EXISTS vault_meta (
        name TEXT PRIMARY KEY,
        value BLOB NOT NULL
    );
    """

    def __init__(self, db_path: Path | str, cipher: Optional[AesGcmCipher] = None) -> None:
        """
        Create an uninitialized store.

        Args:
            db_path: Path to the SQLite store file (created on initialize)
            cipher: Field cipher (defaults to AES-256-GCM)
        """
        self._db_path = Path(db_path)
        self._cipher = cipher or AesGcmCipher()
        self._key: Optional[bytes] = None
        self._state = StoreState.UNINITIALIZED
        self._lock = threading.RLock()
        self._log = logging.getLogger("securevault.store")

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is StoreState.READY

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    @contextmanager
    def _connect(self, path: Optional[Path] = None) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, roll back on any error."""
        try:
            conn = sqlite3.connect(str(path or self._db_path))
        except sqlite3.Error as exc:
            raise StorageUnavailableError("Cannot open vault store") from exc

        try:
            yield conn
            conn.commit()
        except sqlite3.DatabaseError as exc:
            conn.rollback()
            message = str(exc).lower()
            if "not a database" in message or "malformed" in message:
                raise CorruptStoreError("Vault store file is not readable") from exc
            raise StorageUnavailableError("Vault storage operation failed") from exc
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _require_key(self) -> bytes:
        if self._state is not StoreState.READY or self._key is None:
            raise NotInitializedError()
        return self._key

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, key: bytes) -> None:
        """
        Open (creating if absent) the store and make it ready.

        Args:
            key: 32-byte master key

        Raises:
            ValueError: If the key has the wrong size
            WrongKeyError: If the key cannot open existing data
            StorageUnavailableError: If the store file cannot be opened
        """
        if not isinstance(key, (bytes, bytearray)) or len(key) != AES_KEY_SIZE:
            raise ValueError(f"Key must be exactly {AES_KEY_SIZE} bytes")
        key = bytes(key)

        with self._lock:
            try:
                ensure_private_dir(self._db_path.parent)
            except OSError as exc:
                raise StorageUnavailableError("Cannot create vault directory") from exc

            self._open_with(key)
            self._key = key
            self._state = StoreState.READY

        self._log.info("Vault store ready")

    def _open_with(self, key: bytes, path: Optional[Path] = None) -> None:
        with self._connect(path) as conn:
            conn.executescript(self._SCHEMA)
            self._verify_key(conn, key)

    def _verify_key(self, conn: sqlite3.Connection, key: bytes) -> None:
        """
        Check key against the stored key check value, writing one if absent.

        Stores written without a check value are checked by decrypting the
        first row's title.
        """
        expected = expand_key_hkdf(key, info=KEY_CHECK_INFO)
        row = conn.execute(
            "SELECT value FROM vault_meta WHERE name = ?", (KEY_CHECK_NAME,)
        ).fetchone()

        if row is not None:
            if not self._cipher.constant_time_compare(bytes(row[0]), expected):
                self._log.warning("Key check failed for existing vault")
                raise WrongKeyError()
            return

        first_row = conn.execute("SELECT id, title_ct FROM vault_items LIMIT 1").fetchone()
        if first_row is not None:
            try:
                self._cipher.decrypt(bytes(first_row[1]), key, aad=_aad(first_row[0], "title"))
            except AuthenticationFailed as exc:
                self._log.warning("First-row key check failed for existing vault")
                raise WrongKeyError() from exc

        conn.execute(
            "INSERT INTO vault_meta (name, value) VALUES (?, ?)",
            (KEY_CHECK_NAME, expected),
        )

    def close(self) -> None:
        """Drop the key and return to UNINITIALIZED."""
        with self._lock:
            self._key = None
            self._state = StoreState.UNINITIALIZED
        self._log.info("Vault store closed")

    # ------------------------------------------------------------------
    # Row encoding
    # ------------------------------------------------------------------

    def _encrypt_fields(self, record: Record, key: bytes) -> Tuple[bytes, bytes, bytes]:
        record_id = str(record.id)
        return (
            self._cipher.encrypt(record.title.encode("utf-8"), key, aad=_aad(record_id, "title")),
            self._cipher.encrypt(record.content.encode("utf-8"), key, aad=_aad(record_id, "content")),
            self._cipher.encrypt(pack_fields(record.fields), key, aad=_aad(record_id, "fields")),
        )

    def _decrypt_row(self, row: sqlite3.Row | tuple, key: bytes) -> Record:
        record_id, kind, title_ct, content_ct, fields_ct, created_at, modified_at, favorite = row
        try:
            title = self._cipher.decrypt(bytes(title_ct), key, aad=_aad(record_id, "title"))
            content = self._cipher.decrypt(bytes(content_ct), key, aad=_aad(record_id, "content"))
            fields = self._cipher.decrypt(bytes(fields_ct), key, aad=_aad(record_id, "fields"))
        except AuthenticationFailed as exc:
            self._log.error("Record %s failed authentication", record_id)
            raise CorruptStoreError(f"Record {record_id} failed authentication") from exc

        try:
            return Record(
                id=uuid.UUID(record_id),
                kind=RecordKind.from_string(kind),
                title=title.decode("utf-8"),
                content=content.decode("utf-8"),
                fields=unpack_fields(fields),
                created_at=_parse_timestamp(created_at),
                modified_at=_parse_timestamp(modified_at),
                favorite=bool(favorite),
            )
        except (ValueError, TypeError) as exc:
            raise CorruptStoreError(f"Record {record_id} cannot be decoded") from exc

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def insert(self, record: Record) -> Record:
        """
        Encrypt and store a new record.

        Raises:
            NotInitializedError: If the store is not ready
            DuplicateIdError: If the id already exists
            EncryptionFailure: If encryption fails
        """
        with self._lock:
            key = self._require_key()
            title_ct, content_ct, fields_ct = self._encrypt_fields(record, key)

            with self._connect() as conn:
                exists = conn.execute(
                    "SELECT 1 FROM vault_items WHERE id = ?", (str(record.id),)
                ).fetchone()
                if exists:
                    raise DuplicateIdError(record.id)

                conn.execute(
                    f"INSERT INTO vault_items ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        str(record.id),
                        record.kind.name,
                        title_ct,
                        content_ct,
                        fields_ct,
                        _format_timestamp(record.created_at),
                        _format_timestamp(record.modified_at),
                        int(record.favorite),
                    ),
                )

        self._log.debug("Inserted %s record %s", record.kind.name, record.id)
        return record

    def _next_modified(self, previous: datetime) -> datetime:
        now = utc_now()
        if now <= previous:
            now = previous + timedelta(microseconds=1)
        return now

    def update(self, record: Record) -> Record:
        """
        Re-encrypt every field of an existing record and overwrite it.

        modified_at is always stamped here; created_at is taken from the
        stored row.

        Returns:
            The record as stored

        Raises:
            NotInitializedError: If the store is not ready
            RecordNotFoundError: If the id does not exist
            InvalidRecordError: If the kind differs from the stored kind
        """
        record_id = str(record.id)
        with self._lock:
            key = self._require_key()

            with self._connect() as conn:
                row = conn.execute(
                    "SELECT kind, created_at, modified_at FROM vault_items WHERE id = ?",
                    (record_id,),
                ).fetchone()
                if row is None:
                    raise RecordNotFoundError(record.id)
                if row[0] != record.kind.name:
                    raise InvalidRecordError("Record kind cannot change")

                try:
                    created_at = _parse_timestamp(row[1])
                    previous = _parse_timestamp(row[2])
                except ValueError as exc:
                    raise CorruptStoreError(f"Record {record_id} has bad timestamps") from exc

                stored = replace(
                    record,
                    created_at=created_at,
                    modified_at=self._next_modified(max(previous, created_at)),
                )
                title_ct, content_ct, fields_ct = self._encrypt_fields(stored, key)

                conn.execute(
                    """
                    UPDATE vault_items
                    SET title_ct = ?, content_ct = ?, fields_ct = ?,
                        modified_at = ?, favorite = ?
                    WHERE id = ?
                    """,
                    (
                        title_ct,
                        content_ct,
                        fields_ct,
                        _format_timestamp(stored.modified_at),
                        int(stored.favorite),
                        record_id,
                    ),
                )

        self._log.debug("Updated record %s", record_id)
        return stored

    def set_favorite(self, record_id: uuid.UUID | str, favorite: bool) -> Record:
        """
        Change only the favorite flag of a record.

        Returns:
            The updated record

        Raises:
            RecordNotFoundError: If the id does not exist
        """
        with self._lock:
            key = self._require_key()
            id_text = _id_text(record_id)

            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT {_COLUMNS} FROM vault_items WHERE id = ?", (id_text,)
                ).fetchone()
                if row is None:
                    raise RecordNotFoundError(record_id)

                current = self._decrypt_row(row, key)
                stored = replace(
                    current,
                    favorite=bool(favorite),
                    modified_at=self._next_modified(current.modified_at),
                )
                conn.execute(
                    "UPDATE vault_items SET favorite = ?, modified_at = ? WHERE id = ?",
                    (int(stored.favorite), _format_timestamp(stored.modified_at), id_text),
                )

        return stored

    def delete(self, record_id: uuid.UUID | str) -> None:
        """Delete a record. Deleting a missing id is a no-op."""
        with self._lock:
            self._require_key()
            id_text = _id_text(record_id)
            with self._connect() as conn:
                conn.execute("DELETE FROM vault_items WHERE id = ?", (id_text,))

        self._log.debug("Deleted record %s", id_text)

    def fetch_one(self, record_id: uuid.UUID | str) -> Optional[Record]:
        """
        Fetch and decrypt one record.

        Returns:
            The record, or None when the id does not exist

        Raises:
            CorruptStoreError: If the row fails authentication
        """
        with self._lock:
            key = self._require_key()
            id_text = _id_text(record_id)
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT {_COLUMNS} FROM vault_items WHERE id = ?", (id_text,)
                ).fetchone()

            if row is None:
                return None
            return self._decrypt_row(row, key)

    def fetch_all(self) -> List[Record]:
        """
        Fetch and decrypt every record, oldest first.

        A single bad row aborts the whole fetch with CorruptStoreError;
        partial results are never returned.
        """
        with self._lock:
            key = self._require_key()
            with self._connect() as conn:
                rows = conn.execute(
                    f"SELECT {_COLUMNS} FROM vault_items ORDER BY created_at, id"
                ).fetchall()

            return [self._decrypt_row(row, key) for row in rows]

    def count(self) -> int:
        """Number of stored records."""
        with self._lock:
            self._require_key()
            with self._connect() as conn:
                return conn.execute("SELECT COUNT(*) FROM vault_items").fetchone()[0]

    def delete_all(self) -> None:
        """
        Remove every record and the key check value.

        Irreversible. Used for a full vault reset.
        """
        with self._lock:
            self._require_key()
            with self._connect() as conn:
                conn.execute("DELETE FROM vault_items")
                conn.execute("DELETE FROM vault_meta WHERE name = ?", (KEY_CHECK_NAME,))

        self._log.warning("All vault records deleted")

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_to(self, destination: Path | str) -> Path:
        """
        Copy the store file byte-for-byte to destination.

        The copy is only readable with the master key it was written under.

        Raises:
            NoDataError: If the store file does not exist
            StorageUnavailableError: If the copy fails
        """
        destination = Path(destination)
        with self._lock:
            if not self._db_path.is_file():
                raise NoDataError()
            try:
                shutil.copyfile(self._db_path, destination)
            except OSError as exc:
                raise StorageUnavailableError("Cannot export vault store") from exc

        self._log.info("Vault store exported")
        return destination

    def import_from(self, source: Path | str) -> None:
        """
        Replace the store file byte-for-byte from source and reload.

        The copy is staged next to the store file and opened with the held
        key first. Only a copy that passes the key check replaces the store;
        on any failure the current file and the READY state are untouched.

        Raises:
            NotInitializedError: If the store is not ready
            StorageUnavailableError: If source cannot be read or written
            WrongKeyError: If the imported data was written under another key
            CorruptStoreError: If source is not a vault store
        """
        source = Path(source)
        with self._lock:
            key = self._require_key()
            try:
                data = source.read_bytes()
                fd, staged_name = tempfile.mkstemp(
                    dir=self._db_path.parent, prefix=f".{self._db_path.name}.import."
                )
            except OSError as exc:
                raise StorageUnavailableError("Cannot import vault store") from exc

            staged = Path(staged_name)
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                    handle.flush()
                    os.fsync(handle.fileno())

                self._open_with(key, staged)
                os.replace(staged, self._db_path)
            except OSError as exc:
                raise StorageUnavailableError("Cannot import vault store") from exc
            finally:
                staged.unlink(missing_ok=True)

        self._log.info("Vault store imported and reloaded")

    def __repr__(self) -> str:
        return f"VaultStore(path={str(self._db_path)!r}, state={self._state.name})"
