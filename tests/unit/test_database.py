"""Unit tests for catalog database operations."""

from __future__ import annotations

import pytest

from songbook.core.database import Database
from songbook.core.models import AssetType


def _add_file(db: Database, song_id: int, path: str, **fields) -> int:
    return db.create_file(song_id, fields.pop("asset_type", AssetType.LYRICS), path, **fields)


@pytest.mark.unit
class TestSongs:
    """Tests for song rows."""

    def test_create_and_get(self, empty_db: Database) -> None:
        song_id = empty_db.create_song("Test Song", description="desc")
        song = empty_db.get_song(song_id)
        assert song["name"] == "Test Song"
        assert song["description"] == "desc"
        assert song["status"] == "Active"
        assert song["created_at"]

    def test_get_missing(self, empty_db: Database) -> None:
        assert empty_db.get_song(999) is None

    def test_update(self, empty_db: Database) -> None:
        song_id = empty_db.create_song("A")
        assert empty_db.update_song(song_id, name="B", status="Archived")
        song = empty_db.get_song(song_id)
        assert (song["name"], song["status"]) == ("B", "Archived")
        assert song["modified_at"] is not None

    def test_update_missing_and_unknown_field(self, empty_db: Database) -> None:
        assert not empty_db.update_song(42, name="x")
        song_id = empty_db.create_song("A")
        with pytest.raises(ValueError):
            empty_db.update_song(song_id, colour="red")

    def test_delete_cascades_rows(self, empty_db: Database) -> None:
        song_id = empty_db.create_song("A")
        collection_id = empty_db.create_collection(song_id, AssetType.LYRICS, "C")
        _add_file(empty_db, song_id, "A/Lyrics/C/a.txt", collection_id=collection_id)
        _add_file(empty_db, song_id, "A/Lyrics/b.txt")

        assert empty_db.delete_song(song_id)
        assert empty_db.get_song(song_id) is None
        assert empty_db.get_collection(collection_id) is None
        assert empty_db.get_all_files() == []
        assert not empty_db.delete_song(song_id)


@pytest.mark.unit
class TestCollections:
    """Tests for collection rows."""

    def test_collections_scoped_by_song_and_type(self, empty_db: Database) -> None:
        song_id = empty_db.create_song("A")
        other_song = empty_db.create_song("B")
        empty_db.create_collection(song_id, AssetType.SHEET_MUSIC, "Band")
        empty_db.create_collection(song_id, "Lyrics", "Words")
        empty_db.create_collection(other_song, AssetType.SHEET_MUSIC, "Other")

        sheet = empty_db.get_collections(song_id, AssetType.SHEET_MUSIC)
        assert [c["name"] for c in sheet] == ["Band"]
        assert sheet[0]["asset_type"] == "Sheet Music"
        assert len(empty_db.get_collections_for_song(song_id)) == 2

    def test_delete_detaches_files(self, empty_db: Database) -> None:
        song_id = empty_db.create_song("A")
        collection_id = empty_db.create_collection(song_id, AssetType.LYRICS, "C")
        file_id = _add_file(empty_db, song_id, "A/Lyrics/C/a.txt", collection_id=collection_id)

        assert empty_db.delete_collection(collection_id)
        file_row = empty_db.get_file(file_id)
        assert file_row is not None
        assert file_row["collection_id"] is None
        assert empty_db.get_ungrouped_files(song_id, AssetType.LYRICS)[0]["id"] == file_id

    def test_update_collection(self, empty_db: Database) -> None:
        song_id = empty_db.create_song("A")
        collection_id = empty_db.create_collection(song_id, AssetType.LYRICS, "C")
        empty_db.update_collection(collection_id, name="D", description="new")
        collection = empty_db.get_collection(collection_id)
        assert (collection["name"], collection["description"]) == ("D", "new")
        with pytest.raises(ValueError):
            empty_db.update_collection(collection_id, asset_type="Recordings")


@pytest.mark.unit
class TestFiles:
    """Tests for file rows."""

    def test_create_and_lookup_by_path(self, empty_db: Database) -> None:
        song_id = empty_db.create_song("A")
        file_id = _add_file(
            empty_db, song_id, "A/Recordings/A - Live.mp3",
            asset_type=AssetType.RECORDINGS, album="Live", duration=12.5, extension=".mp3",
        )
        file_row = empty_db.get_file_by_path("A/Recordings/A - Live.mp3")
        assert file_row["id"] == file_id
        assert file_row["duration"] == 12.5
        assert file_row["extension"] == ".mp3"
        assert file_row["asset_type"] == "Recordings"

    def test_files_in_insertion_order(self, empty_db: Database) -> None:
        song_id = empty_db.create_song("A")
        collection_id = empty_db.create_collection(song_id, AssetType.LYRICS, "C")
        ids = [
            _add_file(empty_db, song_id, f"A/Lyrics/C/{n}.txt", collection_id=collection_id)
            for n in ("z", "a", "m")
        ]
        assert [f["id"] for f in empty_db.get_files_for_collection(collection_id)] == ids

    def test_files_filtered_by_type(self, empty_db: Database) -> None:
        song_id = empty_db.create_song("A")
        _add_file(empty_db, song_id, "A/Lyrics/a.txt")
        _add_file(empty_db, song_id, "A/Recordings/a.mp3", asset_type=AssetType.RECORDINGS)
        assert len(empty_db.get_files_for_song(song_id)) == 2
        assert len(empty_db.get_files_for_song(song_id, AssetType.RECORDINGS)) == 1

    def test_update_and_batch_delete(self, empty_db: Database) -> None:
        song_id = empty_db.create_song("A")
        first = _add_file(empty_db, song_id, "A/Lyrics/a.txt")
        second = _add_file(empty_db, song_id, "A/Lyrics/b.txt")
        assert empty_db.update_file(first, name="Verse", file_path="A/Lyrics/c.txt")
        assert empty_db.get_file(first)["file_path"] == "A/Lyrics/c.txt"

        assert empty_db.delete_files([first, second, 999]) == 2
        assert empty_db.get_files([first, second]) == []
        assert empty_db.delete_files([]) == 0
