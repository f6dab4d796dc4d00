"""
Shared pytest fixtures for the SecureVault test suite.

Every fixture is rooted in tmp_path so no test touches the user's real
data, config or log directories.
"""

from pathlib import Path

import pytest

from securevault.core.config import PathConfig, SecureConfig
from securevault.core.keys import KeyManager, MemoryKeyStore
from securevault.db.vault_store import VaultStore


@pytest.fixture
def config(tmp_path: Path) -> SecureConfig:
    return SecureConfig(
        paths=PathConfig(
            data_dir=tmp_path / "data",
            config_dir=tmp_path / "config",
            log_dir=tmp_path / "logs",
        )
    )


@pytest.fixture
def keystore() -> MemoryKeyStore:
    return MemoryKeyStore()


@pytest.fixture
def key_manager(keystore) -> KeyManager:
    return KeyManager(keystore)


@pytest.fixture
def master_key(key_manager) -> bytes:
    return key_manager.resolve_master_key()


@pytest.fixture
def db_path(config) -> Path:
    return config.database_path


@pytest.fixture
def store(db_path, master_key) -> VaultStore:
    """A ready store backed by a fresh file."""
    vault_store = VaultStore(db_path)
    vault_store.initialize(master_key)
    yield vault_store
    vault_store.close()
