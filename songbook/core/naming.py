"""Naming policy for stored files.

Maps a file's metadata, its asset type and its song's name to the
canonical stored filename, e.g. ``Test Song - Live Takes -- 1998.mp3``.

Everything here is a pure function: the reconciler compares old and new
names to decide whether a file has to move, so the same inputs must always
produce byte-identical output.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any, Mapping, Optional

from .models import AssetType

# Characters that are illegal or troublesome in filenames on common filesystems
ILLEGAL_CHARS_RE = re.compile(r'[/\\?%*:|"<>]')

# A standalone run of exactly four digits
YEAR_RE = re.compile(r"(?<!\d)\d{4}(?!\d)")

YEAR_SEPARATOR = " -- "
UNTITLED_SONG = "Untitled Song"

# asset type -> (metadata keys tried in order, fallback token)
DETAIL_RULES = {
    AssetType.RECORDINGS: (("album", "name"), "Recording"),
    AssetType.SHEET_MUSIC: (("instrument", "name"), "Sheet"),
    AssetType.LYRICS: (("name",), "Lyrics"),
    AssetType.OTHER_FILES: (("name",), "File"),
}


def sanitize_name(name: str) -> str:
    """Replace filesystem-illegal characters and normalize to NFC.

    Composed form keeps letters like å, ä, ö as single code points so a
    name survives a round trip through filesystems that normalize.
    """
    return unicodedata.normalize("NFC", ILLEGAL_CHARS_RE.sub("_", name))


def extract_year(date: Optional[str]) -> Optional[str]:
    """Return the first 4-digit year embedded in a free-form date, if any."""
    if not date:
        return None
    match = YEAR_RE.search(date)
    return match.group(0) if match else None


def file_extension(original_file_name: Optional[str]) -> str:
    """Extension of an uploaded filename including the dot, or ''.

    Taken verbatim from the last dot of the basename.
    """
    if not original_file_name:
        return ""
    base = re.split(r"[/\\]", original_file_name)[-1]
    index = base.rfind(".")
    return base[index:] if index >= 0 else ""


def detail_token(metadata: Mapping[str, Any], asset_type: AssetType) -> str:
    """Select the descriptive part of the filename for an asset type."""
    keys, fallback = DETAIL_RULES.get(asset_type, (("name",), "File"))
    for key in keys:
        value = metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return fallback


def compute_file_name_with_extension(
    metadata: Mapping[str, Any],
    asset_type: AssetType,
    song_name: Optional[str],
    extension: str,
) -> str:
    """Compute the stored filename given an already-extracted extension.

    Used for cascades, where the catalog keeps the extension of the
    original upload rather than its filename.
    """
    song = sanitize_name((song_name or "").strip()) or UNTITLED_SONG
    detail = sanitize_name(detail_token(metadata, asset_type))
    year = extract_year(metadata.get("date"))
    suffix = f"{YEAR_SEPARATOR}{year}" if year else ""
    return f"{song} - {detail}{suffix}{extension}"


def compute_file_name(
    metadata: Mapping[str, Any],
    asset_type: AssetType,
    song_name: Optional[str],
    original_file_name: Optional[str],
) -> str:
    """Compute the canonical stored filename for a file.

    Args:
        metadata: File metadata (name, date, album, instrument, ...)
        asset_type: Bucket the file belongs to
        song_name: Name of the owning song
        original_file_name: Name of the uploaded file

    Returns:
        ``"{song} - {detail}{ -- year}{ext}"``
    """
    return compute_file_name_with_extension(
        metadata, asset_type, song_name, file_extension(original_file_name)
    )
