"""Web API tests for song endpoints."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from flask.testing import FlaskClient

from tests.helpers import FLUTE_PATH, LYRICS_PATH, PIANO_PATH, RECORDING_PATH


def _sheet_music(*parts: dict) -> list:
    return [{"id": 1, "kind": "collection", "name": "Flute arrangement", "parts": list(parts)}]


FLUTE = {"id": 2, "instrument": "Flute"}
PIANO = {"id": 3, "instrument": "Piano"}


@pytest.mark.web
class TestGetSongs:
    """Test GET /api/songs and GET /api/songs/<id>."""

    def test_list_songs(self, client: FlaskClient) -> None:
        response = client.get("/api/songs")

        assert response.status_code == 200
        songs = json.loads(response.data)
        assert [s["name"] for s in songs] == ["Test Song", "Second Song"]

    def test_song_has_nested_assets(self, client: FlaskClient) -> None:
        response = client.get("/api/songs/1")

        assert response.status_code == 200
        song = json.loads(response.data)
        assert song["description"] == "A test song"
        collection = song["sheetMusic"][0]
        assert collection["kind"] == "collection"
        assert [p["file_path"] for p in collection["parts"]] == [FLUTE_PATH, PIANO_PATH]
        assert song["recordings"][0]["file_path"] == RECORDING_PATH
        assert song["otherFiles"] == []

    def test_missing_song_returns_404(self, client: FlaskClient) -> None:
        response = client.get("/api/songs/999")

        assert response.status_code == 404
        assert json.loads(response.data)["error"] == "Song 999 not found"


@pytest.mark.web
class TestCreateSong:
    """Test POST /api/songs."""

    def test_create_song(self, client: FlaskClient, uploads_dir: Path) -> None:
        response = client.post("/api/songs", json={"name": "Third Song", "type": "Cover"})

        assert response.status_code == 201
        song = json.loads(response.data)
        assert song["id"] == 3
        assert song["type"] == "Cover"
        assert song["status"] == "Active"
        assert song["lyrics"] == []
        assert (uploads_dir / "Third Song").is_dir()

    def test_directory_clash_returns_409(self, client: FlaskClient) -> None:
        response = client.post("/api/songs", json={"name": "Test Song"})

        assert response.status_code == 409

    def test_non_string_name_returns_400(self, client: FlaskClient) -> None:
        response = client.post("/api/songs", json={"name": 42})

        assert response.status_code == 400
        assert json.loads(response.data)["error"].startswith("Invalid name:")


@pytest.mark.web
class TestUpdateSong:
    """Test PUT /api/songs/<id>."""

    def test_rename_moves_files(self, client: FlaskClient, uploads_dir: Path) -> None:
        response = client.put("/api/songs/1", json={"name": "Renamed"})

        assert response.status_code == 200
        song = json.loads(response.data)
        assert song["name"] == "Renamed"
        assert song["lyrics"][0]["file_path"] == "Renamed/Lyrics/Renamed - Verse.txt"
        assert sorted(song["report"]["moved_files"]) == [1, 2, 3, 4]
        assert (uploads_dir / "Renamed" / "Lyrics" / "Renamed - Verse.txt").is_file()
        assert not (uploads_dir / "Test Song").exists()

    def test_omitted_part_is_deleted(self, client: FlaskClient, uploads_dir: Path) -> None:
        response = client.put("/api/songs/1", json={"sheetMusic": _sheet_music(FLUTE)})

        assert response.status_code == 200
        song = json.loads(response.data)
        assert song["report"]["deleted_files"] == [3]
        assert [p["id"] for p in song["sheetMusic"][0]["parts"]] == [2]
        assert not (uploads_dir / PIANO_PATH).exists()
        # asset types not in the body are untouched
        assert len(song["recordings"]) == 1
        assert len(song["lyrics"]) == 1

    def test_multipart_upload(self, client: FlaskClient, uploads_dir: Path) -> None:
        body = {
            "sheetMusic": _sheet_music(
                FLUTE, PIANO, {"upload": "f0", "instrument": "Cello", "clientRef": "new-1"}
            ),
        }
        response = client.put(
            "/api/songs/1",
            data={"song": json.dumps(body), "f0": (io.BytesIO(b"%PDF cello"), "cello.pdf")},
            content_type="multipart/form-data",
        )

        assert response.status_code == 200
        song = json.loads(response.data)
        new_id = song["report"]["client_refs"]["new-1"]
        parts = song["sheetMusic"][0]["parts"]
        assert [p["id"] for p in parts] == [2, 3, new_id]
        cello = uploads_dir / "Test Song/Sheet Music/Flute arrangement/Test Song - Cello.pdf"
        assert cello.read_bytes() == b"%PDF cello"

    def test_multipart_without_song_field(self, client: FlaskClient) -> None:
        response = client.put(
            "/api/songs/1",
            data={"f0": (io.BytesIO(b"x"), "x.txt")},
            content_type="multipart/form-data",
        )

        assert response.status_code == 400

    def test_bare_references_change_nothing(self, client: FlaskClient, uploads_dir: Path) -> None:
        body = {
            "recordings": [{"id": 1}],
            "sheetMusic": [{"kind": "collection", "id": 1, "parts": [{"id": 2}, {"id": 3}]}],
        }
        response = client.put("/api/songs/1", json=body)

        assert response.status_code == 200
        song = json.loads(response.data)
        assert song["report"]["moved_files"] == []
        assert song["recordings"][0]["album"] == "Live Takes"
        assert song["sheetMusic"][0]["name"] == "Flute arrangement"
        assert (uploads_dir / RECORDING_PATH).is_file()
        assert (uploads_dir / FLUTE_PATH).is_file()

    def test_file_of_other_type_rejected_without_changes(
        self, client: FlaskClient, uploads_dir: Path
    ) -> None:
        response = client.put("/api/songs/1", json={"name": "Renamed", "lyrics": [{"id": 1}]})

        assert response.status_code == 400
        assert json.loads(response.data)["error"].startswith("Invalid file_id:")
        assert (uploads_dir / LYRICS_PATH).is_file()
        assert json.loads(client.get("/api/songs/1").data)["name"] == "Test Song"

    def test_missing_song_returns_404(self, client: FlaskClient) -> None:
        response = client.put("/api/songs/999", json={"name": "x"})

        assert response.status_code == 404


@pytest.mark.web
class TestDeleteSong:
    """Test DELETE /api/songs/<id>."""

    def test_delete_song(self, client: FlaskClient, uploads_dir: Path) -> None:
        response = client.delete("/api/songs/1")

        assert response.status_code == 200
        assert sorted(json.loads(response.data)["report"]["deleted_files"]) == [1, 2, 3, 4]
        assert client.get("/api/songs/1").status_code == 404
        assert client.get("/api/files/2").status_code == 404
        assert not (uploads_dir / "Test Song").exists()

    def test_delete_missing_song(self, client: FlaskClient) -> None:
        response = client.delete("/api/songs/999")

        assert response.status_code == 404
