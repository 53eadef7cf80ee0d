"""Path resolution for stored files.

The layout under the uploads root is::

    <song>/<asset type>/[<collection>/]<file name>

This module is the only place that builds those paths. It never touches
the filesystem; creating directories is the file store's job.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any, Mapping, Optional

from .models import AssetType
from .naming import compute_file_name_with_extension, sanitize_name


def _segment(name: Optional[str], fallback: str) -> str:
    """Sanitize one directory segment, falling back for unusable names."""
    cleaned = sanitize_name((name or "").strip())
    # "." and ".." would alias the parent or escape the root
    if not cleaned.strip("."):
        return fallback
    return cleaned


def song_directory(song: Mapping[str, Any]) -> PurePosixPath:
    """Root directory of a song: its sanitized name, or ``song_<id>``."""
    return PurePosixPath(_segment(song.get("name"), f"song_{song['id']}"))


def resolve_directory(
    song: Mapping[str, Any],
    asset_type: AssetType,
    collection: Optional[Mapping[str, Any]] = None,
) -> PurePosixPath:
    """Directory holding a song's files of one asset type.

    Args:
        song: Song record with ``id`` and ``name``
        asset_type: Bucket of the files
        collection: Collection record with ``id`` and ``name``, or None for
            ungrouped files

    Returns:
        Relative directory path
    """
    path = song_directory(song) / asset_type.label
    if collection is not None:
        path = path / _segment(collection.get("name"), f"collection_{collection['id']}")
    return path


def resolve_file_path(
    song: Mapping[str, Any],
    asset_type: AssetType,
    collection: Optional[Mapping[str, Any]],
    metadata: Mapping[str, Any],
    extension: str,
) -> str:
    """Canonical relative path of a file, as stored in ``file_path``."""
    directory = resolve_directory(song, asset_type, collection)
    name = compute_file_name_with_extension(
        metadata, asset_type, song.get("name"), extension
    )
    return str(directory / name)
