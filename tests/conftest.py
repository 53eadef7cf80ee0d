"""Pytest fixtures for Songbook tests.

This module provides fixtures for test configuration, the catalog database,
the local file store and the reconciler.

The populated catalog holds:
    Song 1 "Test Song"
        Recordings (ungrouped): file 1, album "Live Takes", date "June 1998"
        Sheet Music collection 1 "Flute arrangement": files 2 (Flute), 3 (Piano)
        Lyrics (ungrouped): file 4, name "Verse"
    Song 2 "Second Song" with no assets
"""

from __future__ import annotations

from pathlib import Path
from typing import Generator

import pytest

from songbook.core.config import Config
from songbook.core.database import Database
from songbook.core.file_store import LocalFileStore
from songbook.core.models import AssetType
from songbook.core.reconciler import AssetReconciler


@pytest.fixture(autouse=True)
def clear_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's SONGBOOK_* variables out of the tests."""
    monkeypatch.delenv("SONGBOOK_DB_PATH", raising=False)
    monkeypatch.delenv("SONGBOOK_UPLOADS_DIR", raising=False)


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create temporary config directory for tests.

    Args:
        tmp_path: pytest temporary directory fixture

    Returns:
        Path to temporary config directory.
    """
    config_dir = tmp_path / "songbook_test"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


@pytest.fixture
def test_config(test_config_dir: Path) -> Config:
    """Create test configuration."""
    return Config(config_dir=test_config_dir)


@pytest.fixture
def test_db_path(test_config_dir: Path) -> Path:
    """Path of the test catalog, the default location for the config dir."""
    return test_config_dir / "songs.db"


@pytest.fixture
def uploads_dir(test_config_dir: Path) -> Path:
    """Root directory of stored files, the default location for the config dir."""
    return test_config_dir / "uploads"


@pytest.fixture
def file_store(uploads_dir: Path) -> LocalFileStore:
    """Local file store rooted at the test uploads directory."""
    store = LocalFileStore(uploads_dir)
    store.ensure_root()
    return store


@pytest.fixture
def empty_db(test_db_path: Path) -> Generator[Database, None, None]:
    """Create empty test database.

    Yields:
        Empty Database instance.
    """
    db = Database(test_db_path)
    yield db
    db.close()


@pytest.fixture
def reconciler(empty_db: Database, file_store: LocalFileStore) -> AssetReconciler:
    """Reconciler over the empty catalog and the local store."""
    return AssetReconciler(empty_db, file_store)


@pytest.fixture
def populated_db(
    test_db_path: Path, file_store: LocalFileStore
) -> Generator[Database, None, None]:
    """Create test database with sample songs, collections and stored files.

    Yields:
        Database instance with the data described in the module docstring.
    """
    db = Database(test_db_path)
    builder = AssetReconciler(db, file_store)

    song = builder.create_song("Test Song", description="A test song")
    builder.upload_file(
        song["id"],
        AssetType.RECORDINGS,
        b"fake mp3 data",
        "take.mp3",
        {"name": "Take one", "album": "Live Takes", "date": "June 1998"},
    )
    collection = builder.create_collection(
        song["id"], AssetType.SHEET_MUSIC, "Flute arrangement"
    )
    builder.upload_file(
        song["id"],
        AssetType.SHEET_MUSIC,
        b"%PDF-1.4 flute",
        "flute.pdf",
        {"instrument": "Flute"},
        collection_id=collection["id"],
    )
    builder.upload_file(
        song["id"],
        AssetType.SHEET_MUSIC,
        b"%PDF-1.4 piano",
        "piano.pdf",
        {"instrument": "Piano"},
        collection_id=collection["id"],
    )
    builder.upload_file(
        song["id"], AssetType.LYRICS, b"la la la", "lyrics.txt", {"name": "Verse"}
    )
    builder.create_song("Second Song")

    yield db
    db.close()


@pytest.fixture
def populated_reconciler(
    populated_db: Database, file_store: LocalFileStore
) -> AssetReconciler:
    """Reconciler over the populated catalog."""
    return AssetReconciler(populated_db, file_store)
