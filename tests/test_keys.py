"""Tests for key stores and master key resolution."""

import stat
import sys
import threading

import pytest

from securevault.core.errors import KeyPersistError, KeyStoreWriteError
from securevault.core.keys import (
    FileKeyStore,
    KeyManager,
    KeyStore,
    MASTER_KEY_NAME,
    MemoryKeyStore,
)


class FailingKeyStore(KeyStore):
    """Key store whose writes always fail."""

    def get(self, name):
        return None

    def put(self, name, data):
        raise KeyStoreWriteError("read-only")

    def delete(self, name):
        pass


class TestMemoryKeyStore:

    def test_get_absent(self, keystore):
        assert keystore.get("missing") is None

    def test_put_get_delete(self, keystore):
        keystore.put("k", b"\x01\x02")
        assert keystore.get("k") == b"\x01\x02"
        keystore.delete("k")
        assert keystore.get("k") is None

    def test_delete_absent_is_ok(self, keystore):
        keystore.delete("never-stored")


class TestFileKeyStore:

    def test_survives_new_instance(self, tmp_path):
        FileKeyStore(tmp_path / "ks").put("masterKey", b"\xff" * 32)
        assert FileKeyStore(tmp_path / "ks").get("masterKey") == b"\xff" * 32

    def test_put_replaces(self, tmp_path):
        ks = FileKeyStore(tmp_path / "ks")
        ks.put("k", b"old")
        ks.put("k", b"new")
        assert ks.get("k") == b"new"

    def test_delete_absent_is_ok(self, tmp_path):
        ks = FileKeyStore(tmp_path / "ks")
        ks.delete("k")
        ks.put("k", b"v")
        ks.delete("k")
        ks.delete("k")
        assert ks.get("k") is None

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_secret_file_owner_only(self, tmp_path):
        ks = FileKeyStore(tmp_path / "ks")
        ks.put("masterKey", b"v")
        secret_files = list((tmp_path / "ks").iterdir())
        assert len(secret_files) == 1
        assert stat.S_IMODE(secret_files[0].stat().st_mode) == 0o600
        assert stat.S_IMODE((tmp_path / "ks").stat().st_mode) == 0o700

    def test_unwritable_directory_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(KeyStoreWriteError):
            FileKeyStore(blocker / "ks").put("k", b"v")


class TestKeyManager:

    def test_generates_and_persists(self, keystore):
        key = KeyManager(keystore).resolve_master_key()
        assert len(key) == 32
        assert keystore.get(MASTER_KEY_NAME) == key

    def test_idempotent_across_launches(self, keystore):
        first = KeyManager(keystore).resolve_master_key()
        second = KeyManager(keystore).resolve_master_key()
        assert first == second

    def test_idempotent_with_file_store(self, tmp_path):
        first = KeyManager(FileKeyStore(tmp_path / "ks")).resolve_master_key()
        second = KeyManager(FileKeyStore(tmp_path / "ks")).resolve_master_key()
        assert first == second

    def test_returns_existing_key_unchanged(self, keystore):
        keystore.put(MASTER_KEY_NAME, b"\x07" * 32)
        assert KeyManager(keystore).resolve_master_key() == b"\x07" * 32

    def test_concurrent_resolution_sees_one_key(self, keystore):
        manager = KeyManager(keystore)
        results = []

        def resolve():
            results.append(manager.resolve_master_key())

        threads = [threading.Thread(target=resolve) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(set(results)) == 1

    def test_persist_failure_raises(self):
        with pytest.raises(KeyPersistError):
            KeyManager(FailingKeyStore()).resolve_master_key()

    def test_invalid_stored_key_rejected(self, keystore):
        keystore.put(MASTER_KEY_NAME, b"too short")
        with pytest.raises(KeyPersistError):
            KeyManager(keystore).resolve_master_key()

    def test_discard_then_resolve_creates_new_key(self, keystore):
        manager = KeyManager(keystore)
        first = manager.resolve_master_key()
        manager.discard_master_key()
        assert not manager.has_master_key()
        assert manager.resolve_master_key() != first
