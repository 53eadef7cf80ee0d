"""Database operations for Songbook.

This module provides all catalog access using SQLite.
All methods return JSON-serializable types (dicts, lists, primitives)
so the CLI and the web API can hand results straight to their output.

Every write is a single statement or a short transaction on one
connection; nothing here coordinates with the file store.

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .models import AssetType

logger = logging.getLogger(__name__)

__all__ = ["Database"]

SONG_FIELDS = ("name", "description", "type", "status")
COLLECTION_FIELDS = ("name", "description")
FILE_FIELDS = (
    "collection_id",
    "name",
    "description",
    "date",
    "album",
    "instrument",
    "duration",
    "extension",
    "file_path",
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS songs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'Active',
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    modified_at TEXT
);

CREATE TABLE IF NOT EXISTS collections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    song_id INTEGER NOT NULL REFERENCES songs(id) ON DELETE CASCADE,
    asset_type TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    modified_at TEXT
);

CREATE TABLE IF NOT EXISTS files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    song_id INTEGER NOT NULL REFERENCES songs(id) ON DELETE CASCADE,
    collection_id INTEGER REFERENCES collections(id) ON DELETE SET NULL,
    asset_type TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    date TEXT NOT NULL DEFAULT '',
    album TEXT NOT NULL DEFAULT '',
    instrument TEXT NOT NULL DEFAULT '',
    duration REAL NOT NULL DEFAULT 0,
    extension TEXT NOT NULL DEFAULT '',
    file_path TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    modified_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_collections_song_type ON collections(song_id, asset_type);
CREATE INDEX IF NOT EXISTS idx_files_song_type ON files(song_id, asset_type);
CREATE INDEX IF NOT EXISTS idx_files_collection ON files(collection_id);
CREATE INDEX IF NOT EXISTS idx_files_path ON files(file_path);
"""


def _label(asset_type: Union[AssetType, str]) -> str:
    return asset_type.value if isinstance(asset_type, AssetType) else AssetType.parse(asset_type).value


def _row_to_dict(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    return dict(row) if row is not None else None


class Database:
    """SQLite-backed catalog of songs, collections and files."""

    def __init__(self, db_path: Union[Path, str]) -> None:
        """Initialize database connection and schema.

        Args:
            db_path: Path to the SQLite database file, or ':memory:' for in-memory
        """
        self.db_path = str(db_path)
        self.conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._write_lock = threading.RLock()
        self._init_schema()
        logger.info(f"Opened database at {self.db_path}")

    def _init_schema(self) -> None:
        with self._write_lock, self.conn:
            self.conn.executescript(SCHEMA)

    def _execute_write(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        with self._write_lock, self.conn:
            return self.conn.execute(sql, tuple(params))

    def _fetch_one(self, sql: str, params: Iterable[Any] = ()) -> Optional[Dict[str, Any]]:
        return _row_to_dict(self.conn.execute(sql, tuple(params)).fetchone())

    def _fetch_all(self, sql: str, params: Iterable[Any] = ()) -> List[Dict[str, Any]]:
        return [dict(row) for row in self.conn.execute(sql, tuple(params)).fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()
        logger.info("Closed database connection")

    # ============================================================================
    # Songs
    # ============================================================================

    def create_song(
        self,
        name: str = "",
        description: str = "",
        type: str = "",
        status: str = "Active",
    ) -> int:
        """Create a new song and return its id."""
        cursor = self._execute_write(
            "INSERT INTO songs (name, description, type, status) VALUES (?, ?, ?, ?)",
            (name or "", description or "", type or "", status or "Active"),
        )
        return cursor.lastrowid

    def get_song(self, song_id: int) -> Optional[Dict[str, Any]]:
        """Get a specific song by ID."""
        return self._fetch_one("SELECT * FROM songs WHERE id = ?", (song_id,))

    def get_all_songs(self) -> List[Dict[str, Any]]:
        """Get all songs in creation order."""
        return self._fetch_all("SELECT * FROM songs ORDER BY id")

    def update_song(self, song_id: int, **fields: Any) -> bool:
        """Update song fields (name, description, type, status).

        Returns:
            True if the song exists, False otherwise.
        """
        return self._update("songs", SONG_FIELDS, song_id, fields)

    def delete_song(self, song_id: int) -> bool:
        """Delete a song with all its collections and files.

        Returns:
            True if the song was deleted, False if it didn't exist.
        """
        with self._write_lock, self.conn:
            self.conn.execute("DELETE FROM files WHERE song_id = ?", (song_id,))
            self.conn.execute("DELETE FROM collections WHERE song_id = ?", (song_id,))
            cursor = self.conn.execute("DELETE FROM songs WHERE id = ?", (song_id,))
        return cursor.rowcount > 0

    # ============================================================================
    # Collections
    # ============================================================================

    def create_collection(
        self,
        song_id: int,
        asset_type: Union[AssetType, str],
        name: str = "",
        description: str = "",
    ) -> int:
        """Create a new, empty collection and return its id."""
        cursor = self._execute_write(
            "INSERT INTO collections (song_id, asset_type, name, description) VALUES (?, ?, ?, ?)",
            (song_id, _label(asset_type), name or "", description or ""),
        )
        return cursor.lastrowid

    def get_collection(self, collection_id: int) -> Optional[Dict[str, Any]]:
        """Get a specific collection by ID."""
        return self._fetch_one("SELECT * FROM collections WHERE id = ?", (collection_id,))

    def get_collections(
        self, song_id: int, asset_type: Union[AssetType, str]
    ) -> List[Dict[str, Any]]:
        """Get a song's collections of one asset type in creation order."""
        return self._fetch_all(
            "SELECT * FROM collections WHERE song_id = ? AND asset_type = ? ORDER BY id",
            (song_id, _label(asset_type)),
        )

    def get_collections_for_song(self, song_id: int) -> List[Dict[str, Any]]:
        """Get all collections of a song."""
        return self._fetch_all(
            "SELECT * FROM collections WHERE song_id = ? ORDER BY id", (song_id,)
        )

    def update_collection(self, collection_id: int, **fields: Any) -> bool:
        """Update collection name and/or description.

        The asset type of a collection never changes after creation.
        """
        return self._update("collections", COLLECTION_FIELDS, collection_id, fields)

    def delete_collection(self, collection_id: int) -> bool:
        """Delete a collection, detaching its files.

        Member files become ungrouped; no file row is deleted.

        Returns:
            True if the collection was deleted, False if it didn't exist.
        """
        with self._write_lock, self.conn:
            self.conn.execute(
                "UPDATE files SET collection_id = NULL, modified_at = datetime('now') "
                "WHERE collection_id = ?",
                (collection_id,),
            )
            cursor = self.conn.execute("DELETE FROM collections WHERE id = ?", (collection_id,))
        return cursor.rowcount > 0

    # ============================================================================
    # Files
    # ============================================================================

    def create_file(
        self,
        song_id: int,
        asset_type: Union[AssetType, str],
        file_path: str,
        extension: str = "",
        collection_id: Optional[int] = None,
        name: str = "",
        description: str = "",
        date: str = "",
        album: str = "",
        instrument: str = "",
        duration: float = 0.0,
    ) -> int:
        """Create a file record and return its id."""
        cursor = self._execute_write(
            """INSERT INTO files (
                song_id, collection_id, asset_type, name, description, date,
                album, instrument, duration, extension, file_path
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                song_id, collection_id, _label(asset_type),
                name or "", description or "", date or "",
                album or "", instrument or "", float(duration or 0),
                extension or "", file_path,
            ),
        )
        return cursor.lastrowid

    def get_file(self, file_id: int) -> Optional[Dict[str, Any]]:
        """Get a specific file by ID."""
        return self._fetch_one("SELECT * FROM files WHERE id = ?", (file_id,))

    def get_files(self, file_ids: List[int]) -> List[Dict[str, Any]]:
        """Get several files by ID; unknown ids are skipped."""
        if not file_ids:
            return []
        placeholders = ",".join("?" for _ in file_ids)
        return self._fetch_all(
            f"SELECT * FROM files WHERE id IN ({placeholders}) ORDER BY id", file_ids
        )

    def get_file_by_path(self, file_path: str) -> Optional[Dict[str, Any]]:
        """Get the file stored at a relative path, if any."""
        return self._fetch_one(
            "SELECT * FROM files WHERE file_path = ? ORDER BY id LIMIT 1", (file_path,)
        )

    def get_files_for_song(
        self, song_id: int, asset_type: Optional[Union[AssetType, str]] = None
    ) -> List[Dict[str, Any]]:
        """Get all files of a song, optionally of one asset type only."""
        if asset_type is None:
            return self._fetch_all(
                "SELECT * FROM files WHERE song_id = ? ORDER BY id", (song_id,)
            )
        return self._fetch_all(
            "SELECT * FROM files WHERE song_id = ? AND asset_type = ? ORDER BY id",
            (song_id, _label(asset_type)),
        )

    def get_ungrouped_files(
        self, song_id: int, asset_type: Union[AssetType, str]
    ) -> List[Dict[str, Any]]:
        """Get a song's files of one asset type that belong to no collection."""
        return self._fetch_all(
            "SELECT * FROM files WHERE song_id = ? AND asset_type = ? "
            "AND collection_id IS NULL ORDER BY id",
            (song_id, _label(asset_type)),
        )

    def get_files_for_collection(self, collection_id: int) -> List[Dict[str, Any]]:
        """Get the member files of a collection in insertion order."""
        return self._fetch_all(
            "SELECT * FROM files WHERE collection_id = ? ORDER BY id", (collection_id,)
        )

    def get_all_files(self) -> List[Dict[str, Any]]:
        """Get every file record."""
        return self._fetch_all("SELECT * FROM files ORDER BY id")

    def update_file(self, file_id: int, **fields: Any) -> bool:
        """Update file metadata, path and/or collection membership."""
        return self._update("files", FILE_FIELDS, file_id, fields)

    def delete_files(self, file_ids: List[int]) -> int:
        """Delete file records in one statement.

        Returns:
            Number of rows deleted.
        """
        if not file_ids:
            return 0
        placeholders = ",".join("?" for _ in file_ids)
        cursor = self._execute_write(
            f"DELETE FROM files WHERE id IN ({placeholders})", file_ids
        )
        return cursor.rowcount

    # ============================================================================
    # Helpers
    # ============================================================================

    def _update(
        self, table: str, allowed: Iterable[str], row_id: int, fields: Dict[str, Any]
    ) -> bool:
        allowed = set(allowed)
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update {table} fields: {', '.join(sorted(unknown))}")
        if not fields:
            return self._fetch_one(f"SELECT id FROM {table} WHERE id = ?", (row_id,)) is not None

        assignments = ", ".join(f"{column} = ?" for column in fields)
        params = list(fields.values()) + [row_id]
        cursor = self._execute_write(
            f"UPDATE {table} SET {assignments}, modified_at = datetime('now') WHERE id = ?",
            params,
        )
        return cursor.rowcount > 0
