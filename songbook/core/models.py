"""Data models for the Songbook application.

This module defines the asset types and the shapes a client submits when
editing a song. Persisted records (songs, collections, files) travel as
plain dicts straight out of the catalog so they stay JSON-serializable.

All IDs are integers issued by the catalog. Client-side temporary ids are
only ever carried as ``client_ref`` correlation tokens.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .validation import ValidationError


class AssetType(Enum):
    """The fixed buckets every collection and file belongs to.

    The value is the label stored in the catalog and used verbatim as the
    second directory segment under a song.
    """

    RECORDINGS = "Recordings"
    SHEET_MUSIC = "Sheet Music"
    LYRICS = "Lyrics"
    OTHER_FILES = "Other Files"

    @property
    def label(self) -> str:
        return self.value

    @property
    def response_key(self) -> str:
        """Key under which this bucket is nested in a song response."""
        return _RESPONSE_KEYS[self]

    @classmethod
    def parse(cls, value: Any, field_name: str = "asset_type") -> "AssetType":
        """Parse an asset type from any accepted spelling.

        Raises:
            ValidationError: If the value names no known asset type.
        """
        if isinstance(value, AssetType):
            return value
        if not isinstance(value, str):
            raise ValidationError(
                field_name, f"must be a string, got {type(value).__name__}"
            )
        key = value.strip().replace(" ", "").replace("_", "").lower()
        asset_type = _ALIASES.get(key)
        if asset_type is None:
            valid = ", ".join(t.value for t in cls)
            raise ValidationError(field_name, f"unknown asset type '{value}' (expected one of: {valid})")
        return asset_type


_RESPONSE_KEYS = {
    AssetType.RECORDINGS: "recordings",
    AssetType.SHEET_MUSIC: "sheetMusic",
    AssetType.LYRICS: "lyrics",
    AssetType.OTHER_FILES: "otherFiles",
}

# "Sheet Music", "SheetMusic", "sheetMusic", "SHEET_MUSIC" all collapse to "sheetmusic"
_ALIASES = {t.value.replace(" ", "").lower(): t for t in AssetType}

# Descriptive fields a client may edit on a file
FILE_METADATA_FIELDS = ("name", "description", "date", "album", "instrument")


@dataclass(frozen=True)
class FileEntry:
    """A file-like object in a submitted song edit.

    Exactly one of three things:
    - an unchanged reference (``id`` set, no payload, metadata as stored
      or not submitted at all)
    - a metadata edit (``id`` set, no payload, metadata differs)
    - a new upload (``payload`` set; ``id`` set means replace that file)

    Descriptive fields left as None were not submitted; an existing file
    keeps its stored value for them.

    Attributes:
        id: Catalog id of an existing file, None for new uploads
        name: Display name
        description: Free-text description
        date: Free-form date; a 4-digit year in it ends up in the filename
        album: Album (Recordings only)
        instrument: Instrument (Sheet Music only)
        payload: Raw bytes of a new upload
        original_filename: Name of the uploaded file, source of the extension
        duration: Duration hint in seconds supplied by the client
        client_ref: Correlation token for the client, never persisted
    """

    id: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    album: Optional[str] = None
    instrument: Optional[str] = None
    payload: Optional[bytes] = None
    original_filename: str = ""
    duration: Optional[float] = None
    client_ref: Optional[str] = None

    @property
    def is_upload(self) -> bool:
        return self.payload is not None

    def metadata(self) -> Dict[str, str]:
        """Descriptive metadata as a dict, the input of the naming policy."""
        return {key: getattr(self, key) or "" for key in FILE_METADATA_FIELDS}

    def submitted_metadata(self) -> Dict[str, str]:
        """Only the descriptive fields the client actually sent."""
        return {
            key: getattr(self, key)
            for key in FILE_METADATA_FIELDS
            if getattr(self, key) is not None
        }


@dataclass(frozen=True)
class CollectionEntry:
    """A collection with its parts in a submitted song edit.

    Attributes:
        id: Catalog id of an existing collection, None to create one
        name: Collection name (becomes a directory); None keeps the stored name
        description: Free-text description; None keeps the stored one
        files: Member files in submission order
        client_ref: Correlation token for the client, never persisted
    """

    id: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    files: List[FileEntry] = field(default_factory=list)
    client_ref: Optional[str] = None


AssetEntry = Union[CollectionEntry, FileEntry]


@dataclass(frozen=True)
class SongEdit:
    """Desired state of a song as submitted by a client.

    Asset types missing from ``assets`` are left untouched; an empty list
    for an asset type removes everything of that type.
    """

    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    assets: Dict[AssetType, List[AssetEntry]] = field(default_factory=dict)


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass."""

    created_files: List[int] = field(default_factory=list)
    updated_files: List[int] = field(default_factory=list)
    moved_files: List[int] = field(default_factory=list)
    deleted_files: List[int] = field(default_factory=list)
    created_collections: List[int] = field(default_factory=list)
    removed_collections: List[int] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)
    client_refs: Dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def add_failure(self, file_id: Optional[int], reason: str) -> None:
        self.failures.append({"file_id": file_id, "reason": reason})

    def merge(self, other: "ReconcileReport") -> None:
        """Fold another report into this one."""
        self.created_files.extend(other.created_files)
        self.updated_files.extend(other.updated_files)
        self.moved_files.extend(other.moved_files)
        self.deleted_files.extend(other.deleted_files)
        self.created_collections.extend(other.created_collections)
        self.removed_collections.extend(other.removed_collections)
        self.failures.extend(other.failures)
        self.client_refs.update(other.client_refs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created_files": self.created_files,
            "updated_files": self.updated_files,
            "moved_files": self.moved_files,
            "deleted_files": self.deleted_files,
            "created_collections": self.created_collections,
            "removed_collections": self.removed_collections,
            "failures": self.failures,
            "client_refs": self.client_refs,
        }
