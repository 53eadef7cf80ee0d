"""Nested song views assembled from the flat catalog tables.

Clients render a song's assets as collections (with their parts) followed
by ungrouped files, one list per asset type.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from .database import Database
from .models import AssetType

__all__ = ["get_assets_for_song", "get_song_view", "list_song_views", "file_view", "collection_view"]


def file_view(file_row: Dict[str, Any]) -> Dict[str, Any]:
    """A file record as returned to clients."""
    return dict(file_row, kind="file")


def collection_view(
    collection_row: Dict[str, Any], files: List[Dict[str, Any]]
) -> Dict[str, Any]:
    """A collection record with its member files under ``parts``."""
    return dict(collection_row, kind="collection", parts=[file_view(f) for f in files])


def get_assets_for_song(
    db: Database, song_id: int, asset_type: Union[AssetType, str]
) -> List[Dict[str, Any]]:
    """Collections of one asset type with their parts, then ungrouped files.

    Member files keep insertion order; nothing else is sorted.
    """
    assets = [
        collection_view(collection, db.get_files_for_collection(collection["id"]))
        for collection in db.get_collections(song_id, asset_type)
    ]
    assets.extend(file_view(f) for f in db.get_ungrouped_files(song_id, asset_type))
    return assets


def _song_view(db: Database, song: Dict[str, Any]) -> Dict[str, Any]:
    view = dict(song)
    for asset_type in AssetType:
        view[asset_type.response_key] = get_assets_for_song(db, song["id"], asset_type)
    return view


def get_song_view(db: Database, song_id: int) -> Optional[Dict[str, Any]]:
    """A song with its four nested asset lists, or None if it doesn't exist."""
    song = db.get_song(song_id)
    if song is None:
        return None
    return _song_view(db, song)


def list_song_views(db: Database) -> List[Dict[str, Any]]:
    """Every song in the catalog, each with its nested asset lists."""
    return [_song_view(db, song) for song in db.get_all_songs()]
