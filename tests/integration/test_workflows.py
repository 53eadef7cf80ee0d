"""End-to-end workflow tests.

Tests multi-step user scenarios through the web API, checking the
catalog and the stored files together after each step.
"""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, Dict

import pytest

from songbook.core.database import Database
from songbook.core.file_store import LocalFileStore
from songbook.core.reconciler import AssetReconciler


def _create_song(client, name: str) -> Dict[str, Any]:
    response = client.post("/api/songs", json={"name": name})
    assert response.status_code == 201
    return json.loads(response.data)


def _upload(client, song_id: int, asset_type: str, payload: bytes, filename: str, **form: Any) -> Dict[str, Any]:
    data = {"file": (io.BytesIO(payload), filename), "songId": str(song_id), "assetType": asset_type}
    data.update({k: str(v) for k, v in form.items()})
    response = client.post("/api/upload", data=data, content_type="multipart/form-data")
    assert response.status_code == 201, response.data
    return json.loads(response.data)


def _song(client, song_id: int) -> Dict[str, Any]:
    return json.loads(client.get(f"/api/songs/{song_id}").data)


def _put_song(client, song_id: int, body: Dict[str, Any]) -> Dict[str, Any]:
    response = client.put(f"/api/songs/{song_id}", json=body)
    assert response.status_code == 200, response.data
    return json.loads(response.data)


def _assert_paths_consistent(catalog: Database, uploads_dir: Path) -> None:
    checker = AssetReconciler(catalog, LocalFileStore(uploads_dir))
    assert checker.find_inconsistencies() == []


@pytest.mark.integration
class TestSongLifecycle:
    """Create, fill, rename and delete a song."""

    def test_rename_moves_collection_recording(
        self, web_client, catalog: Database, uploads_dir: Path
    ) -> None:
        song = _create_song(web_client, "Test Song")
        response = web_client.post(
            "/api/collections",
            json={"songId": song["id"], "assetType": "Recordings", "name": "Live Takes",
                  "description": "From the tour"},
        )
        collection = json.loads(response.data)
        uploaded = _upload(
            web_client, song["id"], "Recordings", b"mp3 bytes", "take.mp3",
            collectionId=collection["id"], album="Live Takes", date="1998 concert",
        )
        assert uploaded["filePath"] == "Test Song/Recordings/Live Takes/Test Song - Live Takes -- 1998.mp3"

        renamed = _put_song(web_client, song["id"], {"name": "Test Song II"})

        expected = "Test Song II/Recordings/Live Takes/Test Song II - Live Takes -- 1998.mp3"
        assert renamed["recordings"][0]["parts"][0]["file_path"] == expected
        assert (uploads_dir / expected).read_bytes() == b"mp3 bytes"
        assert not (uploads_dir / "Test Song").exists()
        after = catalog.get_collection(collection["id"])
        assert (after["id"], after["description"]) == (collection["id"], "From the tour")
        _assert_paths_consistent(catalog, uploads_dir)

    def test_rename_to_same_name_is_a_no_op(
        self, web_client, catalog: Database, uploads_dir: Path
    ) -> None:
        song = _create_song(web_client, "Same")
        _upload(web_client, song["id"], "Lyrics", b"words", "w.txt", name="Verse")
        before = catalog.get_all_files()

        result = _put_song(web_client, song["id"], {"name": "Same"})

        assert result["report"]["moved_files"] == []
        assert catalog.get_all_files() == before

    def test_delete_song_leaves_no_orphans(
        self, web_client, catalog: Database, uploads_dir: Path
    ) -> None:
        keep = _create_song(web_client, "Keep")
        _upload(web_client, keep["id"], "Lyrics", b"k", "k.txt")
        song = _create_song(web_client, "Gone")
        _upload(web_client, song["id"], "SheetMusic", b"a", "a.pdf", collectionName="Parts", instrument="Oboe")
        _upload(web_client, song["id"], "Recordings", b"b", "b.mp3", album="Demo")

        assert web_client.delete(f"/api/songs/{song['id']}").status_code == 200

        orphans = catalog.conn.execute(
            "SELECT COUNT(*) FROM files WHERE song_id = ?", (song["id"],)
        ).fetchone()[0]
        orphan_collections = catalog.conn.execute(
            "SELECT COUNT(*) FROM collections WHERE song_id = ?", (song["id"],)
        ).fetchone()[0]
        assert (orphans, orphan_collections) == (0, 0)
        assert not (uploads_dir / "Gone").exists()
        assert len(catalog.get_files_for_song(keep["id"])) == 1


@pytest.mark.integration
class TestEditWorkflows:
    """Round trips of the nested song view through PUT."""

    def test_batch_delete_set_difference(
        self, web_client, catalog: Database, uploads_dir: Path
    ) -> None:
        song = _create_song(web_client, "Set")
        ids = [
            _upload(web_client, song["id"], "Lyrics", name.encode(), f"{name}.txt", name=name)["id"]
            for name in ("One", "Two", "Three")
        ]
        view = _song(web_client, song["id"])
        kept = [entry for entry in view["lyrics"] if entry["id"] != ids[1]]

        result = _put_song(web_client, song["id"], {"lyrics": kept})

        assert result["report"]["deleted_files"] == [ids[1]]
        assert [f["id"] for f in catalog.get_files_for_song(song["id"])] == [ids[0], ids[2]]
        assert not (uploads_dir / "Set/Lyrics/Set - Two.txt").exists()
        assert (uploads_dir / "Set/Lyrics/Set - One.txt").read_bytes() == b"One"
        assert (uploads_dir / "Set/Lyrics/Set - Three.txt").read_bytes() == b"Three"

    def test_collection_delete_detaches_all_members(
        self, web_client, catalog: Database, uploads_dir: Path
    ) -> None:
        song = _create_song(web_client, "Band")
        for instrument in ("Flute", "Oboe", "Horn"):
            _upload(web_client, song["id"], "Sheet Music", b"pdf", f"{instrument}.pdf",
                    collectionName="Winds", instrument=instrument)
        collection_id = catalog.get_collections(song["id"], "Sheet Music")[0]["id"]
        before = len(catalog.get_all_files())

        web_client.delete(f"/api/collections/{collection_id}")

        files = catalog.get_files_for_song(song["id"])
        assert len(catalog.get_all_files()) == before == 3
        assert all(f["collection_id"] is None for f in files)
        _assert_paths_consistent(catalog, uploads_dir)

    def test_regroup_and_upload_in_one_edit(
        self, web_client, catalog: Database, uploads_dir: Path
    ) -> None:
        song = _create_song(web_client, "Mix")
        loose = _upload(web_client, song["id"], "Recordings", b"a", "a.mp3", album="Demo")
        body = {
            "recordings": [
                {
                    "kind": "collection",
                    "name": "Sessions",
                    "clientRef": "col-1",
                    "parts": [
                        dict(loose["file"], album="Session 1"),
                        {"upload": "take2", "album": "Session 2", "date": "2020", "clientRef": "tmp-2"},
                    ],
                }
            ]
        }
        response = web_client.put(
            f"/api/songs/{song['id']}",
            data={"song": json.dumps(body), "take2": (io.BytesIO(b"b"), "b.mp3")},
            content_type="multipart/form-data",
        )
        assert response.status_code == 200
        result = json.loads(response.data)

        collection = result["recordings"][0]
        assert collection["id"] == result["report"]["client_refs"]["col-1"]
        assert [p["file_path"] for p in collection["parts"]] == [
            "Mix/Recordings/Sessions/Mix - Session 1.mp3",
            "Mix/Recordings/Sessions/Mix - Session 2 -- 2020.mp3",
        ]
        assert collection["parts"][0]["id"] == loose["id"]
        _assert_paths_consistent(catalog, uploads_dir)

    def test_resubmitted_view_changes_nothing(
        self, web_client, catalog: Database, uploads_dir: Path
    ) -> None:
        song = _create_song(web_client, "Stable")
        _upload(web_client, song["id"], "Sheet Music", b"p", "p.pdf", collectionName="Duo", instrument="Piano")
        _upload(web_client, song["id"], "Lyrics", b"l", "l.txt", name="Verse")
        before = catalog.get_all_files()

        result = _put_song(web_client, song["id"], _song(web_client, song["id"]))

        report = result["report"]
        assert report["moved_files"] == report["deleted_files"] == report["updated_files"] == []
        assert catalog.get_all_files() == before
