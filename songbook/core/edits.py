"""Parsing of submitted song edits.

Turns the JSON body of a song update (plus any uploaded file parts) into a
SongEdit. Every asset entry is classified once, here, as either a
collection with parts or a standalone file; nothing downstream inspects
raw dicts.

Entry shapes accepted per asset type key (``recordings``, ``sheetMusic``,
``lyrics``, ``otherFiles``):

    {"kind": "collection", "id": 3, "name": "Flute", "parts": [ ...files ]}
    {"id": 12, "name": "Take 2", "album": "Live", "date": "1998"}
    {"upload": "part-name", "name": "New take", "clientRef": "tmp-1"}

A dict with ``parts`` (or ``files``) and no ``kind`` is a collection.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

from .models import (
    FILE_METADATA_FIELDS,
    AssetEntry,
    AssetType,
    CollectionEntry,
    FileEntry,
    SongEdit,
)
from .validation import (
    ValidationError,
    validate_optional_entity_id,
    validate_song_name,
    validate_text_field,
)

__all__ = ["parse_song_edit", "Upload"]

# (original filename, bytes)
Upload = Tuple[str, bytes]


def _optional_text(data: Mapping[str, Any], key: str) -> Optional[str]:
    if key not in data or data[key] is None:
        return None
    return validate_text_field(data[key], key)


def _client_ref(data: Mapping[str, Any]) -> Optional[str]:
    ref = data.get("clientRef", data.get("client_ref"))
    return None if ref is None else str(ref)


def _parse_duration(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("duration", "must be a number")
    try:
        duration = float(value)
    except (TypeError, ValueError):
        raise ValidationError("duration", "must be a number") from None
    if duration < 0:
        raise ValidationError("duration", "cannot be negative")
    return duration


def parse_file_entry(data: Any, uploads: Mapping[str, Upload]) -> FileEntry:
    """Parse one standalone file or collection part."""
    if not isinstance(data, dict):
        raise ValidationError("assets", f"file entry must be an object, got {type(data).__name__}")

    payload = None
    original_filename = validate_text_field(
        data.get("originalFilename", data.get("original_filename")), "originalFilename"
    )
    part = data.get("upload")
    if part is not None:
        if part not in uploads:
            raise ValidationError("upload", f"no uploaded part named '{part}'")
        filename, payload = uploads[part]
        original_filename = original_filename or filename

    # Absent keys stay None so a bare {"id": N} leaves the stored metadata alone
    fields = {key: _optional_text(data, key) for key in FILE_METADATA_FIELDS}
    return FileEntry(
        id=validate_optional_entity_id(data.get("id"), "file_id"),
        payload=payload,
        original_filename=original_filename,
        duration=_parse_duration(data.get("duration")),
        client_ref=_client_ref(data),
        **fields,
    )


def parse_collection_entry(data: Dict[str, Any], uploads: Mapping[str, Upload]) -> CollectionEntry:
    """Parse a collection with its parts."""
    parts = data.get("parts", data.get("files", []))
    if parts is None:
        parts = []
    if not isinstance(parts, list):
        raise ValidationError("parts", f"must be a list, got {type(parts).__name__}")
    files = []
    for part in parts:
        if isinstance(part, dict) and (part.get("kind") == "collection" or "parts" in part):
            raise ValidationError("parts", "collections cannot be nested")
        files.append(parse_file_entry(part, uploads))
    name = _optional_text(data, "name")
    return CollectionEntry(
        id=validate_optional_entity_id(data.get("id"), "collection_id"),
        name=None if name is None else name.strip(),
        description=_optional_text(data, "description"),
        files=files,
        client_ref=_client_ref(data),
    )


def parse_asset_entries(entries: Any, uploads: Mapping[str, Upload]) -> List[AssetEntry]:
    """Parse the list submitted for one asset type."""
    if not isinstance(entries, list):
        raise ValidationError("assets", f"must be a list, got {type(entries).__name__}")
    result: List[AssetEntry] = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValidationError("assets", f"entry must be an object, got {type(entry).__name__}")
        kind = entry.get("kind")
        if kind == "collection" or (kind is None and ("parts" in entry or "files" in entry)):
            result.append(parse_collection_entry(entry, uploads))
        elif kind in (None, "file"):
            result.append(parse_file_entry(entry, uploads))
        else:
            raise ValidationError("kind", f"unknown entry kind '{kind}'")
    return result


def parse_song_edit(
    data: Any, uploads: Optional[Mapping[str, Upload]] = None
) -> SongEdit:
    """Build a SongEdit from a submitted song body.

    Args:
        data: Decoded JSON object
        uploads: Uploaded parts by name, referenced from entries via ``upload``

    Raises:
        ValidationError: If the body or any entry is malformed.
    """
    if not isinstance(data, dict):
        raise ValidationError("song", "must be a JSON object")
    uploads = uploads or {}

    assets: Dict[AssetType, List[AssetEntry]] = {}
    for asset_type in AssetType:
        if asset_type.response_key in data:
            assets[asset_type] = parse_asset_entries(data[asset_type.response_key], uploads)

    name = None
    if data.get("name") is not None:
        name = validate_song_name(data["name"])

    return SongEdit(
        name=name,
        description=_optional_text(data, "description"),
        type=_optional_text(data, "type"),
        status=_optional_text(data, "status"),
        assets=assets,
    )
