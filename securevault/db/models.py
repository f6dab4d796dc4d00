"""
Vault Record Model
==================

The unit of storage. title, content and fields are encrypted at rest;
id, kind, timestamps and the favorite flag are stored in clear.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping

from securevault.core.errors import InvalidRecordError


class RecordKind(Enum):
    """Record kinds. Stored by name, so new members need no migration."""
    CREDENTIAL = "Credential"
    KEY = "Key"
    NOTE = "Note"

    @classmethod
    def from_string(cls, value: str) -> "RecordKind":
        """Convert a stored kind name to RecordKind."""
        try:
            return cls[value.upper()]
        except KeyError:
            raise InvalidRecordError(f"Unknown record kind: {value!r}") from None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Record:
    """
    One vault entry.

    Note: title, content and fields are never included in repr.
    """
    id: uuid.UUID
    kind: RecordKind
    title: str
    content: str
    fields: Mapping[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    modified_at: datetime = None  # type: ignore[assignment]
    favorite: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.id, uuid.UUID):
            raise InvalidRecordError("Record id must be a UUID")
        if not isinstance(self.kind, RecordKind):
            raise InvalidRecordError("Record kind must be a RecordKind")
        if self.created_at.tzinfo is None:
            raise InvalidRecordError("created_at must be timezone-aware")
        if self.modified_at is None:
            object.__setattr__(self, "modified_at", self.created_at)
        elif self.modified_at.tzinfo is None:
            raise InvalidRecordError("modified_at must be timezone-aware")
        if self.modified_at < self.created_at:
            raise InvalidRecordError("modified_at must not precede created_at")
        for key, value in self.fields.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise InvalidRecordError("Record fields must map str to str")
        object.__setattr__(self, "fields", dict(self.fields))

    def __hash__(self) -> int:
        # fields is a dict; equal records always share an id
        return hash(self.id)

    def __repr__(self) -> str:
        """Safe representation without encrypted values."""
        return (
            f"Record(id={str(self.id)!r}, kind={self.kind.name}, "
            f"favorite={self.favorite}, modified_at={self.modified_at.isoformat()})"
        )
