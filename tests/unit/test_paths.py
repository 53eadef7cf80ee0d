"""Unit tests for stored file path resolution."""

from __future__ import annotations

from pathlib import PurePosixPath

import pytest

from songbook.core.models import AssetType
from songbook.core.paths import resolve_directory, resolve_file_path, song_directory

SONG = {"id": 7, "name": "Test Song"}


@pytest.mark.unit
class TestResolveDirectory:
    """Tests for song_directory and resolve_directory."""

    def test_ungrouped_directory(self) -> None:
        assert resolve_directory(SONG, AssetType.RECORDINGS) == PurePosixPath("Test Song/Recordings")

    def test_asset_type_label_is_used_verbatim(self) -> None:
        assert resolve_directory(SONG, AssetType.SHEET_MUSIC) == PurePosixPath("Test Song/Sheet Music")
        assert resolve_directory(SONG, AssetType.OTHER_FILES) == PurePosixPath("Test Song/Other Files")

    def test_collection_directory(self) -> None:
        collection = {"id": 3, "name": "Flute arrangement"}
        assert resolve_directory(SONG, AssetType.SHEET_MUSIC, collection) == PurePosixPath(
            "Test Song/Sheet Music/Flute arrangement"
        )

    def test_unnamed_song_and_collection_fall_back_to_ids(self) -> None:
        song = {"id": 9, "name": ""}
        assert song_directory(song) == PurePosixPath("song_9")
        assert resolve_directory(song, AssetType.LYRICS, {"id": 4, "name": " "}) == PurePosixPath(
            "song_9/Lyrics/collection_4"
        )

    def test_dot_names_cannot_escape(self) -> None:
        assert song_directory({"id": 1, "name": ".."}) == PurePosixPath("song_1")
        assert song_directory({"id": 1, "name": "a/../b"}) == PurePosixPath("a_.._b")

    def test_slash_in_name_stays_one_segment(self) -> None:
        assert len(song_directory({"id": 1, "name": "AC/DC"}).parts) == 1


@pytest.mark.unit
class TestResolveFilePath:
    """Tests for resolve_file_path."""

    def test_full_path(self) -> None:
        path = resolve_file_path(
            SONG, AssetType.RECORDINGS, None, {"album": "Live Takes", "date": "1998"}, ".mp3"
        )
        assert path == "Test Song/Recordings/Test Song - Live Takes -- 1998.mp3"

    def test_path_in_collection(self) -> None:
        path = resolve_file_path(
            SONG, AssetType.SHEET_MUSIC, {"id": 1, "name": "Band"}, {"instrument": "Flute"}, ".pdf"
        )
        assert path == "Test Song/Sheet Music/Band/Test Song - Flute.pdf"

    def test_path_tracks_song_name(self) -> None:
        renamed = dict(SONG, name="Test Song II")
        path = resolve_file_path(renamed, AssetType.LYRICS, None, {"name": "Verse"}, ".txt")
        assert path == "Test Song II/Lyrics/Test Song II - Verse.txt"
