"""Tests for the encrypted vault store.

Covers the store state machine, CRUD contract, confidentiality of the
on-disk file, tamper detection, key checks and raw export/import.
"""

import sqlite3
import stat
import sys
import threading
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from securevault.core.crypto import AesGcmCipher
from securevault.core.errors import (
    CorruptStoreError,
    DuplicateIdError,
    EncryptionFailure,
    InvalidRecordError,
    NoDataError,
    NotInitializedError,
    RecordNotFoundError,
    StorageUnavailableError,
    WrongKeyError,
)
from securevault.db import codec
from securevault.db.codec import CredentialEntry, KeyEntry, NoteEntry
from securevault.db.models import RecordKind
from securevault.db.vault_store import StoreState, VaultStore


def bank_record(**kwargs):
    entry = CredentialEntry(
        title="Bank", username="alice", password="p@ss", url="bank.example",
    )
    return codec.to_record(entry, **kwargs)


def raw_column(db_path, record_id, column):
    conn = sqlite3.connect(str(db_path))
    try:
        return conn.execute(
            f"SELECT {column} FROM vault_items WHERE id = ?", (str(record_id),)
        ).fetchone()[0]
    finally:
        conn.close()


def write_column(db_path, record_id, column, value):
    conn = sqlite3.connect(str(db_path))
    try:
        conn.execute(f"UPDATE vault_items SET {column} = ? WHERE id = ?", (value, str(record_id)))
        conn.commit()
    finally:
        conn.close()


# ── State machine ───────────────────────────────────────────────────


class TestInitialization:

    def test_fetch_all_before_initialize_fails(self, db_path):
        store = VaultStore(db_path)
        with pytest.raises(NotInitializedError):
            store.fetch_all()

    @pytest.mark.parametrize("operation", [
        lambda s: s.insert(bank_record()),
        lambda s: s.update(bank_record()),
        lambda s: s.delete(uuid.uuid4()),
        lambda s: s.fetch_one(uuid.uuid4()),
        lambda s: s.delete_all(),
        lambda s: s.count(),
        lambda s: s.set_favorite(uuid.uuid4(), True),
        lambda s: s.fetch_one("not-a-uuid"),
        lambda s: s.delete("not-a-uuid"),
        lambda s: s.set_favorite("not-a-uuid", True),
    ])
    def test_every_operation_requires_ready(self, db_path, operation):
        with pytest.raises(NotInitializedError):
            operation(VaultStore(db_path))

    def test_initialize_creates_directory_and_file(self, db_path, master_key):
        assert not db_path.parent.exists()
        store = VaultStore(db_path)
        store.initialize(master_key)
        assert db_path.is_file()
        assert store.state is StoreState.READY

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_initialize_creates_owner_only_directories(self, tmp_path, master_key):
        VaultStore(tmp_path / "outer" / "inner" / "vault.db").initialize(master_key)
        assert stat.S_IMODE((tmp_path / "outer").stat().st_mode) == 0o700
        assert stat.S_IMODE((tmp_path / "outer" / "inner").stat().st_mode) == 0o700

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_initialize_keeps_existing_directory_mode(self, tmp_path, master_key):
        shared = tmp_path / "shared"
        shared.mkdir()
        shared.chmod(0o755)

        VaultStore(shared / "vault.db").initialize(master_key)
        assert stat.S_IMODE(shared.stat().st_mode) == 0o755

    def test_initialize_rejects_bad_key_size(self, db_path):
        with pytest.raises(ValueError):
            VaultStore(db_path).initialize(b"short")

    def test_close_returns_to_uninitialized(self, store):
        store.close()
        assert store.state is StoreState.UNINITIALIZED
        with pytest.raises(NotInitializedError):
            store.fetch_all()

    def test_reopen_with_same_key(self, store, db_path, master_key):
        record = store.insert(bank_record())
        reopened = VaultStore(db_path)
        reopened.initialize(master_key)
        assert reopened.fetch_one(record.id) == record

    def test_different_key_fails_fast(self, store, db_path):
        store.insert(bank_record())
        other = VaultStore(db_path)
        with pytest.raises(WrongKeyError):
            other.initialize(AesGcmCipher.generate_key())
        assert other.state is StoreState.UNINITIALIZED

    def test_reinitialize_with_wrong_key_keeps_prior_state(self, store):
        record = store.insert(bank_record())
        with pytest.raises(WrongKeyError):
            store.initialize(AesGcmCipher.generate_key())
        assert store.fetch_one(record.id) == record

    def test_legacy_store_without_key_check_uses_first_row(self, store, db_path, master_key):
        store.insert(bank_record())
        conn = sqlite3.connect(str(db_path))
        conn.execute("DELETE FROM vault_meta")
        conn.commit()
        conn.close()

        with pytest.raises(WrongKeyError):
            VaultStore(db_path).initialize(AesGcmCipher.generate_key())
        VaultStore(db_path).initialize(master_key)

    def test_unopenable_path_is_storage_error(self, tmp_path, master_key):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not directory")
        with pytest.raises(StorageUnavailableError):
            VaultStore(blocker / "vault.db").initialize(master_key)

    def test_garbage_file_is_corrupt(self, tmp_path, master_key):
        db_path = tmp_path / "vault.db"
        db_path.write_bytes(b"this is not a sqlite database file at all" * 20)
        with pytest.raises(CorruptStoreError):
            VaultStore(db_path).initialize(master_key)


# ── CRUD ────────────────────────────────────────────────────────────


class TestCrud:

    def test_insert_credential_roundtrip(self, store):
        record = bank_record()
        store.insert(record)

        fetched = store.fetch_one(record.id)
        assert fetched == record
        assert fetched.created_at == fetched.modified_at
        assert codec.from_record(fetched) == CredentialEntry(
            title="Bank", username="alice", password="p@ss", url="bank.example",
        )

    @pytest.mark.parametrize("entry", [
        KeyEntry(title="API", key="sk_live_123", key_type="API Key"),
        NoteEntry(title="Recipe", content="flour\nsugar", tags="food"),
    ])
    def test_roundtrip_other_kinds(self, store, entry):
        record = store.insert(codec.to_record(entry))
        assert codec.from_record(store.fetch_one(record.id)) == entry

    def test_non_utc_timestamps_roundtrip(self, store):
        offset = timezone(timedelta(hours=5, minutes=30))
        record = bank_record(now=datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=offset))
        store.insert(record)
        assert store.fetch_one(record.id) == record

    def test_duplicate_id_rejected(self, store):
        record = store.insert(bank_record())
        with pytest.raises(DuplicateIdError):
            store.insert(record)

    def test_fetch_one_absent(self, store):
        assert store.fetch_one(uuid.uuid4()) is None

    def test_fetch_one_accepts_string_id(self, store):
        record = store.insert(bank_record())
        assert store.fetch_one(str(record.id)) == record

    def test_invalid_id_rejected(self, store):
        with pytest.raises(InvalidRecordError):
            store.fetch_one("not-a-uuid")

    def test_update_reencrypts_every_field(self, store, db_path):
        record = store.insert(bank_record())
        old_content_ct = raw_column(db_path, record.id, "content_ct")
        old_fields_ct = raw_column(db_path, record.id, "fields_ct")

        edited = codec.apply(record, CredentialEntry(
            title="Bank", username="alice", password="n3w", url="bank.example",
        ))
        stored = store.update(edited)

        fetched = store.fetch_one(record.id)
        assert fetched == stored
        assert fetched.modified_at > fetched.created_at
        assert fetched.created_at == record.created_at
        assert fetched.fields["username"] == "alice"
        assert fetched.fields["url"] == "bank.example"
        assert fetched.content == "n3w"
        assert raw_column(db_path, record.id, "content_ct") != old_content_ct
        assert raw_column(db_path, record.id, "fields_ct") != old_fields_ct

    def test_update_preserves_stored_created_at(self, store):
        record = store.insert(bank_record(now=datetime(2023, 1, 1, tzinfo=timezone.utc)))
        forged = bank_record(record_id=record.id, now=datetime(2025, 1, 1, tzinfo=timezone.utc))
        stored = store.update(forged)
        assert stored.created_at == record.created_at
        assert store.fetch_one(record.id).created_at == record.created_at

    def test_update_stamps_modified_at(self, store):
        record = store.insert(bank_record(now=datetime(2020, 1, 1, tzinfo=timezone.utc)))
        before = datetime.now(timezone.utc)
        stored = store.update(record)
        assert stored.modified_at >= before

    def test_repeated_updates_strictly_increase(self, store):
        record = store.insert(bank_record())
        first = store.update(record)
        second = store.update(first)
        assert second.modified_at > first.modified_at

    def test_update_missing_raises(self, store):
        with pytest.raises(RecordNotFoundError):
            store.update(bank_record())

    def test_update_kind_change_rejected(self, store):
        record = store.insert(bank_record())
        note = codec.to_record(NoteEntry(title="x"), record_id=record.id)
        with pytest.raises(InvalidRecordError):
            store.update(note)

    def test_set_favorite(self, store):
        record = store.insert(bank_record())
        stored = store.set_favorite(record.id, True)
        assert stored.favorite is True
        assert stored.modified_at > record.modified_at
        assert store.fetch_one(record.id).favorite is True

    def test_set_favorite_missing_raises(self, store):
        with pytest.raises(RecordNotFoundError):
            store.set_favorite(uuid.uuid4(), True)

    def test_delete_is_idempotent(self, store):
        record = store.insert(bank_record())
        store.delete(record.id)
        store.delete(record.id)
        assert store.fetch_one(record.id) is None

    def test_fetch_all_ordered_by_creation(self, store):
        older = store.insert(bank_record(now=datetime(2021, 1, 1, tzinfo=timezone.utc)))
        newer = store.insert(codec.to_record(NoteEntry(title="n"), now=datetime(2022, 1, 1, tzinfo=timezone.utc)))
        assert store.fetch_all() == [older, newer]
        assert store.count() == 2

    def test_delete_all(self, store):
        store.insert(bank_record())
        store.insert(bank_record())
        store.delete_all()
        assert store.fetch_all() == []

    def test_delete_all_allows_new_key(self, store, db_path):
        store.insert(bank_record())
        store.delete_all()
        store.close()
        fresh = VaultStore(db_path)
        fresh.initialize(AesGcmCipher.generate_key())
        assert fresh.fetch_all() == []

    def test_records_are_hashable(self, store):
        record = store.insert(bank_record())
        fetched = store.fetch_one(record.id)
        assert hash(fetched) == hash(record)
        assert {record, fetched} == {record}

    def test_concurrent_inserts(self, store):
        records = [codec.to_record(NoteEntry(title=f"note {i}")) for i in range(20)]
        threads = [threading.Thread(target=store.insert, args=(r,)) for r in records]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert {r.id for r in store.fetch_all()} == {r.id for r in records}


# ── Confidentiality and integrity ───────────────────────────────────


class TestConfidentiality:

    def test_file_contains_no_plaintext(self, store, db_path):
        store.insert(codec.to_record(CredentialEntry(
            title="ZebraBankTitle", username="quokka-user", password="Pw-Unique-77",
            url="https://platypus.example", notes="marmot notes",
        )))
        store.insert(codec.to_record(NoteEntry(
            title="Wombat", content="narwhal body text", tags="axolotl-tag",
        )))
        raw = db_path.read_bytes()
        for secret in ("ZebraBankTitle", "quokka-user", "Pw-Unique-77", "platypus.example",
                       "marmot notes", "Wombat", "narwhal body text", "axolotl-tag", "username"):
            assert secret.encode("utf-8") not in raw

    def test_key_not_written_to_store(self, store, db_path, master_key):
        assert master_key not in db_path.read_bytes()

    @pytest.mark.parametrize("column", ["title_ct", "content_ct", "fields_ct"])
    def test_bit_flip_detected(self, store, db_path, column):
        record = store.insert(bank_record())
        blob = bytearray(raw_column(db_path, record.id, column))
        blob[len(blob) // 2] ^= 0x01
        write_column(db_path, record.id, column, bytes(blob))

        with pytest.raises(CorruptStoreError):
            store.fetch_one(record.id)
        with pytest.raises(CorruptStoreError):
            store.fetch_all()

    def test_one_bad_row_aborts_fetch_all(self, store, db_path):
        good = store.insert(bank_record())
        bad = store.insert(bank_record())
        write_column(db_path, bad.id, "title_ct", b"\x00" * 8)

        with pytest.raises(CorruptStoreError):
            store.fetch_all()
        assert store.fetch_one(good.id) == good

    def test_swapped_blobs_detected(self, store, db_path):
        first = store.insert(bank_record())
        second = store.insert(bank_record())
        write_column(db_path, second.id, "content_ct", raw_column(db_path, first.id, "content_ct"))
        with pytest.raises(CorruptStoreError):
            store.fetch_one(second.id)

    def test_non_ascii_stored_id_is_corrupt(self, store, db_path):
        record = store.insert(bank_record())
        write_column(db_path, record.id, "id", "ünïcode-id")
        with pytest.raises(CorruptStoreError):
            store.fetch_all()


# ── Encryption failures ─────────────────────────────────────────────


def _broken_nonce():
    raise OSError("entropy source unavailable")


class TestEncryptionFailure:

    def test_insert_fails_without_writing(self, store, monkeypatch):
        monkeypatch.setattr(AesGcmCipher, "generate_nonce", staticmethod(_broken_nonce))
        record = bank_record()

        with pytest.raises(EncryptionFailure):
            store.insert(record)

        monkeypatch.undo()
        assert store.count() == 0
        assert store.fetch_one(record.id) is None

    def test_update_fails_keeping_old_ciphertext(self, store, db_path, monkeypatch):
        record = store.insert(bank_record())
        before = {
            column: raw_column(db_path, record.id, column)
            for column in ("title_ct", "content_ct", "fields_ct", "modified_at")
        }
        edited = codec.apply(record, CredentialEntry(title="Bank", password="n3w"))

        monkeypatch.setattr(AesGcmCipher, "generate_nonce", staticmethod(_broken_nonce))
        with pytest.raises(EncryptionFailure):
            store.update(edited)

        monkeypatch.undo()
        for column, value in before.items():
            assert raw_column(db_path, record.id, column) == value
        assert store.fetch_one(record.id) == record


# ── Export / import ─────────────────────────────────────────────────


class TestExportImport:

    def test_export_missing_file(self, tmp_path):
        with pytest.raises(NoDataError):
            VaultStore(tmp_path / "absent.db").export_to(tmp_path / "out.db")

    def test_export_is_byte_exact(self, store, db_path, tmp_path):
        store.insert(bank_record())
        exported = store.export_to(tmp_path / "backup.db")
        assert exported.read_bytes() == db_path.read_bytes()

    def test_export_reset_import_restores_records(self, store, tmp_path):
        originals = [
            store.insert(bank_record()),
            store.insert(codec.to_record(NoteEntry(title="n", content="body"))),
        ]
        backup = store.export_to(tmp_path / "backup.db")

        store.delete_all()
        assert store.fetch_all() == []

        store.import_from(backup)
        restored = {str(r.id): r for r in store.fetch_all()}
        assert restored == {str(r.id): r for r in originals}

    def test_import_under_other_key_keeps_current_store(self, store, db_path, tmp_path):
        record = store.insert(bank_record())
        before = db_path.read_bytes()

        other_path = tmp_path / "other" / "vault.db"
        other = VaultStore(other_path)
        other.initialize(AesGcmCipher.generate_key())
        other.insert(bank_record())

        with pytest.raises(WrongKeyError):
            store.import_from(other_path)

        assert store.state is StoreState.READY
        assert store.fetch_one(record.id) == record
        assert db_path.read_bytes() == before

    def test_import_garbage_keeps_current_store(self, store, db_path, tmp_path):
        record = store.insert(bank_record())
        junk = tmp_path / "junk.db"
        junk.write_bytes(b"this is not a sqlite database file at all" * 20)

        with pytest.raises(CorruptStoreError):
            store.import_from(junk)

        assert store.fetch_all() == [record]
        assert sorted(p.name for p in db_path.parent.iterdir()) == [db_path.name]

    def test_import_requires_ready(self, db_path, tmp_path):
        with pytest.raises(NotInitializedError):
            VaultStore(db_path).import_from(tmp_path / "anything.db")

    def test_import_missing_source(self, store, tmp_path):
        with pytest.raises(StorageUnavailableError):
            store.import_from(tmp_path / "missing.db")

    def test_kind_names_stored_in_clear(self, store, db_path):
        record = store.insert(bank_record())
        assert raw_column(db_path, record.id, "kind") == RecordKind.CREDENTIAL.name
