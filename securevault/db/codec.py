"""
Record Codec
============

Maps typed vault entries to the generic (title, content, fields) triple
stored by VaultStore, and packs the fields mapping into a single byte
blob for encryption.

Field names are shared across kinds and stable on disk:
    Credential: username, url, notes   (content = password)
    Key:        keyType, notes         (content = key material)
    Note:       tags                   (content = note body)

Missing field names decode to empty strings and unknown names are
ignored, so older and newer record shapes stay readable.

Fields Blob Format:
    VERSION (1) | COUNT (4) | { KEY_LEN (4) | KEY | VALUE_LEN (4) | VALUE } * COUNT

    Big-endian lengths, UTF-8 strings, keys in sorted order.
"""

from __future__ import annotations

import dataclasses
import struct
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Final, Mapping, Optional, Union

from securevault.core.errors import InvalidRecordError
from securevault.db.models import Record, RecordKind, utc_now

FIELDS_FORMAT_VERSION: Final[int] = 1
_LEN: Final[struct.Struct] = struct.Struct(">I")


@dataclass(frozen=True)
class CredentialEntry:
    title: str
    username: str = ""
    password: str = ""
    url: str = ""
    notes: str = ""


@dataclass(frozen=True)
class KeyEntry:
    title: str
    key: str = ""
    key_type: str = ""
    notes: str = ""


@dataclass(frozen=True)
class NoteEntry:
    title: str
    content: str = ""
    tags: str = ""


Entry = Union[CredentialEntry, KeyEntry, NoteEntry]


@dataclass(frozen=True)
class EncodedRecord:
    """Generic form of an entry as consumed by VaultStore."""
    kind: RecordKind
    title: str
    content: str
    fields: Dict[str, str]


def encode(entry: Entry) -> EncodedRecord:
    """Convert a typed entry to its generic encrypted-field triple."""
    if isinstance(entry, CredentialEntry):
        return EncodedRecord(
            kind=RecordKind.CREDENTIAL,
            title=entry.title,
            content=entry.password,
            fields={"username": entry.username, "url": entry.url, "notes": entry.notes},
        )
    if isinstance(entry, KeyEntry):
        return EncodedRecord(
            kind=RecordKind.KEY,
            title=entry.title,
            content=entry.key,
            fields={"keyType": entry.key_type, "notes": entry.notes},
        )
    if isinstance(entry, NoteEntry):
        return EncodedRecord(
            kind=RecordKind.NOTE,
            title=entry.title,
            content=entry.content,
            fields={"tags": entry.tags},
        )
    raise InvalidRecordError(f"Unsupported entry type: {type(entry).__name__}")


def decode(
    kind: RecordKind,
    title: str,
    content: str,
    fields: Mapping[str, str],
) -> Entry:
    """Rebuild a typed entry from its generic triple."""
    if kind is RecordKind.CREDENTIAL:
        return CredentialEntry(
            title=title,
            username=fields.get("username", ""),
            password=content,
            url=fields.get("url", ""),
            notes=fields.get("notes", ""),
        )
    if kind is RecordKind.KEY:
        return KeyEntry(
            title=title,
            key=content,
            key_type=fields.get("keyType", ""),
            notes=fields.get("notes", ""),
        )
    if kind is RecordKind.NOTE:
        return NoteEntry(
            title=title,
            content=content,
            tags=fields.get("tags", ""),
        )
    raise InvalidRecordError(f"Unsupported record kind: {kind!r}")


def to_record(
    entry: Entry,
    record_id: Optional[uuid.UUID] = None,
    favorite: bool = False,
    now: Optional[datetime] = None,
) -> Record:
    """Create a new record from an entry, with created_at == modified_at."""
    encoded = encode(entry)
    stamp = now or utc_now()
    return Record(
        id=record_id or uuid.uuid4(),
        kind=encoded.kind,
        title=encoded.title,
        content=encoded.content,
        fields=encoded.fields,
        created_at=stamp,
        modified_at=stamp,
        favorite=favorite,
    )


def from_record(record: Record) -> Entry:
    return decode(record.kind, record.title, record.content, record.fields)


def apply(record: Record, entry: Entry) -> Record:
    """
    Derive the replacement record for an edit.

    Keeps id, created_at and favorite. A record's kind cannot change;
    a different kind requires creating a new record.
    """
    encoded = encode(entry)
    if encoded.kind is not record.kind:
        raise InvalidRecordError(
            f"Cannot change record kind from {record.kind.name} to {encoded.kind.name}"
        )
    return dataclasses.replace(
        record,
        title=encoded.title,
        content=encoded.content,
        fields=encoded.fields,
    )


def pack_fields(fields: Mapping[str, str]) -> bytes:
    """Serialize a str->str mapping into the length-prefixed blob format."""
    parts = [struct.pack(">B", FIELDS_FORMAT_VERSION), _LEN.pack(len(fields))]
    for key in sorted(fields):
        key_bytes = key.encode("utf-8")
        value_bytes = fields[key].encode("utf-8")
        parts.append(_LEN.pack(len(key_bytes)))
        parts.append(key_bytes)
        parts.append(_LEN.pack(len(value_bytes)))
        parts.append(value_bytes)
    return b"".join(parts)


def unpack_fields(data: bytes) -> Dict[str, str]:
    """
    Deserialize a fields blob.

    Raises:
        ValueError: If data is malformed
    """
    if len(data) < 1 + _LEN.size:
        raise ValueError("Fields blob too short")

    version = data[0]
    if version != FIELDS_FORMAT_VERSION:
        raise ValueError(f"Unsupported fields format version: {version}")

    (count,) = _LEN.unpack_from(data, 1)
    offset = 1 + _LEN.size

    def take() -> str:
        nonlocal offset
        if offset + _LEN.size > len(data):
            raise ValueError("Fields blob truncated")
        (length,) = _LEN.unpack_from(data, offset)
        offset += _LEN.size
        if offset + length > len(data):
            raise ValueError("Fields blob length out of range")
        chunk = data[offset:offset + length]
        offset += length
        return chunk.decode("utf-8")

    fields: Dict[str, str] = {}
    for _ in range(count):
        key = take()
        fields[key] = take()

    if offset != len(data):
        raise ValueError("Trailing bytes in fields blob")
    return fields
