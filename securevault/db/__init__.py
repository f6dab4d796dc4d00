"""
Database module - Encrypted record persistence.

Security Considerations:
- Sensitive columns are encrypted per field at rest
- No plaintext secrets in the database file
"""

from securevault.db.models import Record, RecordKind
from securevault.db.codec import (
    CredentialEntry,
    KeyEntry,
    NoteEntry,
    EncodedRecord,
)
from securevault.db.vault_store import VaultStore, StoreState

__all__ = [
    "Record",
    "RecordKind",
    "CredentialEntry",
    "KeyEntry",
    "NoteEntry",
    "EncodedRecord",
    "VaultStore",
    "StoreState",
]
