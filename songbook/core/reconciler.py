"""Asset reconciliation for Songbook.

The reconciler is the only component that mutates stored files and the
catalog together. Given a song's desired state it works out which files
to write, move, rename or delete, performs those operations through a
file store and then updates the catalog to match.

Failures are isolated per file: one file that cannot be moved is logged,
reported and skipped, and its catalog row is left untouched so the row
keeps pointing at the bytes that are actually on disk.

There is no cross-request locking; two concurrent edits of the same song
race and the last write wins.

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .audio import read_duration
from .database import Database
from .errors import ConflictError, NotFoundError, StorageError, SongbookError
from .file_store import FileStore
from .models import (
    FILE_METADATA_FIELDS,
    AssetEntry,
    AssetType,
    CollectionEntry,
    FileEntry,
    ReconcileReport,
    SongEdit,
)
from .naming import file_extension
from .paths import resolve_directory, resolve_file_path, song_directory
from .validation import (
    DEFAULT_MAX_UPLOAD_BYTES,
    ValidationError,
    validate_song_name,
    validate_text_field,
    validate_upload_size,
)

logger = logging.getLogger(__name__)

__all__ = ["AssetReconciler"]

# Errors that abort a single file's operation but never its siblings
PER_FILE_ERRORS = (SongbookError, OSError, sqlite3.Error)

_UNSET = object()


class AssetReconciler:
    """Keeps stored files and catalog rows consistent with client edits."""

    def __init__(
        self,
        db: Database,
        store: FileStore,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        """Initialize the reconciler.

        Args:
            db: Catalog database
            store: File store holding the bytes
            max_upload_bytes: Uploads larger than this are rejected
        """
        self.db = db
        self.store = store
        self.max_upload_bytes = max_upload_bytes

    # ============================================================================
    # Lookups
    # ============================================================================

    def _require_song(self, song_id: int) -> Dict[str, Any]:
        song = self.db.get_song(song_id)
        if song is None:
            raise NotFoundError("song", song_id)
        return song

    def _require_collection(self, collection_id: int) -> Dict[str, Any]:
        collection = self.db.get_collection(collection_id)
        if collection is None:
            raise NotFoundError("collection", collection_id)
        return collection

    def _require_file(self, file_id: int) -> Dict[str, Any]:
        file_row = self.db.get_file(file_id)
        if file_row is None:
            raise NotFoundError("file", file_id)
        return file_row

    def _collection_of(self, file_row: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        if file_row.get("collection_id") is None:
            return None
        return self.db.get_collection(file_row["collection_id"])

    def expected_path(
        self,
        file_row: Mapping[str, Any],
        song: Optional[Mapping[str, Any]] = None,
        collection: Any = _UNSET,
    ) -> str:
        """Path a file row should have given its song, collection and metadata."""
        if song is None:
            song = self._require_song(file_row["song_id"])
        if collection is _UNSET:
            collection = self._collection_of(file_row)
        return resolve_file_path(
            song,
            AssetType.parse(file_row["asset_type"]),
            collection,
            file_row,
            file_row.get("extension") or "",
        )

    def _check_song_directory_free(self, song_id: int, name: str) -> None:
        """Two songs must never share a root directory."""
        wanted = song_directory({"id": song_id, "name": name})
        for other in self.db.get_all_songs():
            if other["id"] != song_id and song_directory(other) == wanted:
                raise ConflictError(
                    f"Song {other['id']} already uses the directory '{wanted}'"
                )

    def _check_collection_directory_free(
        self,
        song: Mapping[str, Any],
        asset_type: AssetType,
        name: str,
        collection_id: Optional[int],
    ) -> None:
        """Two collections of one song and asset type must never share a directory."""
        wanted = resolve_directory(song, asset_type, {"id": collection_id or 0, "name": name})
        for other in self.db.get_collections(song["id"], asset_type):
            if other["id"] != collection_id and resolve_directory(song, asset_type, other) == wanted:
                raise ConflictError(
                    f"Collection {other['id']} already uses the directory '{wanted}'"
                )

    # ============================================================================
    # Songs
    # ============================================================================

    def create_song(
        self,
        name: str = "",
        description: str = "",
        type: str = "",
        status: str = "Active",
    ) -> Dict[str, Any]:
        """Create a song and bootstrap its root directory."""
        name = validate_song_name(name)
        if name:
            self._check_song_directory_free(0, name)
        song_id = self.db.create_song(
            name,
            validate_text_field(description, "description"),
            validate_text_field(type, "type"),
            validate_text_field(status, "status") or "Active",
        )
        song = self.db.get_song(song_id)
        self.store.ensure_directory(str(song_directory(song)))
        logger.info(f"Created song {song_id} '{name}'")
        return song

    def update_song(
        self,
        song_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> ReconcileReport:
        """Update song fields, running the rename cascade if the name changes."""
        self._require_song(song_id)
        report = ReconcileReport()
        if name is not None:
            report.merge(self.rename_song(song_id, name))

        fields = {}
        if description is not None:
            fields["description"] = validate_text_field(description, "description")
        if type is not None:
            fields["type"] = validate_text_field(type, "type")
        if status is not None:
            fields["status"] = validate_text_field(status, "status")
        if fields:
            self.db.update_song(song_id, **fields)
        return report

    def rename_song(self, song_id: int, new_name: str) -> ReconcileReport:
        """Rename a song and move every one of its files.

        Files are moved one at a time. A file that fails to move is logged
        and skipped; its catalog path is only updated after a successful
        move. Renaming to the current name moves nothing.
        """
        song = self._require_song(song_id)
        new_name = validate_song_name(new_name)
        report = ReconcileReport()
        if new_name == song["name"]:
            return report

        self._check_song_directory_free(song_id, new_name)
        renamed = dict(song, name=new_name)
        old_root = str(song_directory(song))
        new_root = str(song_directory(renamed))
        logger.info(f"Renaming song {song_id} '{song['name']}' -> '{new_name}'")

        collections = {c["id"]: c for c in self.db.get_collections_for_song(song_id)}
        for file_row in self.db.get_files_for_song(song_id):
            collection = collections.get(file_row["collection_id"])
            target = self.expected_path(file_row, renamed, collection)
            self._move_isolated(file_row, target, report)

        self.store.ensure_directory(new_root)
        for collection in collections.values():
            self.store.ensure_directory(
                str(resolve_directory(renamed, AssetType.parse(collection["asset_type"]), collection))
            )
        self.db.update_song(song_id, name=new_name)

        if old_root != new_root and not self.store.prune_empty_directories(old_root):
            logger.warning(f"Old song directory {old_root} still holds files after rename")
        return report

    def delete_song(self, song_id: int) -> ReconcileReport:
        """Delete a song with all its collections, files and stored bytes."""
        song = self._require_song(song_id)
        report = ReconcileReport()
        files = self.db.get_files_for_song(song_id)
        for file_row in files:
            try:
                self.store.delete(file_row["file_path"])
            except StorageError as e:
                logger.error(f"Could not delete {file_row['file_path']}: {e}")
                report.add_failure(file_row["id"], str(e))
        report.deleted_files.extend(f["id"] for f in files)
        report.removed_collections.extend(
            c["id"] for c in self.db.get_collections_for_song(song_id)
        )
        self.store.delete_tree(str(song_directory(song)))
        self.db.delete_song(song_id)
        logger.info(f"Deleted song {song_id} with {len(files)} file(s)")
        return report

    # ============================================================================
    # Collections
    # ============================================================================

    def create_collection(
        self,
        song_id: int,
        asset_type: Any,
        name: str = "",
        description: str = "",
    ) -> Dict[str, Any]:
        """Create an empty collection and bootstrap its directory."""
        song = self._require_song(song_id)
        asset_type = AssetType.parse(asset_type)
        name = validate_text_field(name, "name").strip()
        self._check_collection_directory_free(song, asset_type, name, None)
        collection_id = self.db.create_collection(
            song_id, asset_type, name, validate_text_field(description, "description")
        )
        collection = self.db.get_collection(collection_id)
        self.store.ensure_directory(str(resolve_directory(song, asset_type, collection)))
        logger.info(f"Created collection {collection_id} '{name}' for song {song_id}")
        return collection

    def update_collection(
        self,
        collection_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ReconcileReport:
        """Rename and/or describe a collection, moving its files on rename."""
        collection = self._require_collection(collection_id)
        report = ReconcileReport()
        self._update_collection_row(collection, name, description, report)
        return report

    def _update_collection_row(
        self,
        collection: Dict[str, Any],
        name: Optional[str],
        description: Optional[str],
        report: ReconcileReport,
    ) -> Dict[str, Any]:
        fields = {}
        if description is not None and description != collection["description"]:
            fields["description"] = validate_text_field(description, "description")
        if name is not None:
            name = validate_text_field(name, "name").strip()
            if name != collection["name"]:
                self._rename_collection(collection, name, report)
                fields["name"] = name
        if fields:
            self.db.update_collection(collection["id"], **fields)
        return dict(collection, **fields)

    def _rename_collection(
        self, collection: Dict[str, Any], new_name: str, report: ReconcileReport
    ) -> None:
        """Move every member file into the renamed collection's directory.

        Files move before the new name is committed so an interrupted
        cascade leaves a partly renamed collection, never a lost file.
        """
        song = self._require_song(collection["song_id"])
        asset_type = AssetType.parse(collection["asset_type"])
        self._check_collection_directory_free(song, asset_type, new_name, collection["id"])
        renamed = dict(collection, name=new_name)
        old_dir = str(resolve_directory(song, asset_type, collection))
        new_dir = str(resolve_directory(song, asset_type, renamed))
        if old_dir == new_dir:
            return

        logger.info(f"Renaming collection {collection['id']} '{collection['name']}' -> '{new_name}'")
        self.store.ensure_directory(new_dir)
        for file_row in self.db.get_files_for_collection(collection["id"]):
            target = self.expected_path(file_row, song, renamed)
            self._move_isolated(file_row, target, report)
        self.store.prune_empty_directories(old_dir)

    def delete_collection(self, collection_id: int) -> ReconcileReport:
        """Delete a collection; its files become ungrouped, never deleted."""
        collection = self._require_collection(collection_id)
        report = ReconcileReport()
        self._remove_collection(collection, report)
        return report

    def _remove_collection(self, collection: Dict[str, Any], report: ReconcileReport) -> None:
        song = self._require_song(collection["song_id"])
        asset_type = AssetType.parse(collection["asset_type"])
        for file_row in self.db.get_files_for_collection(collection["id"]):
            target = self.expected_path(file_row, song, None)
            self._move_isolated(file_row, target, report)
        self.db.delete_collection(collection["id"])
        self.store.prune_empty_directories(str(resolve_directory(song, asset_type, collection)))
        report.removed_collections.append(collection["id"])
        logger.info(f"Deleted collection {collection['id']} '{collection['name']}'")

    # ============================================================================
    # Files
    # ============================================================================

    def upload_file(
        self,
        song_id: int,
        asset_type: Any,
        payload: bytes,
        original_filename: str,
        metadata: Optional[Mapping[str, Any]] = None,
        collection_id: Optional[int] = None,
        collection_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Store one uploaded file and record it in the catalog.

        With ``collection_name`` and no ``collection_id`` the file joins the
        song's collection of that name, which is created if needed.

        Returns:
            The stored file record.
        """
        validate_upload_size(len(payload), self.max_upload_bytes)
        song = self._require_song(song_id)
        asset_type = AssetType.parse(asset_type)
        metadata = dict(metadata or {})
        entry = FileEntry(
            name=validate_text_field(metadata.get("name"), "name"),
            description=validate_text_field(metadata.get("description"), "description"),
            date=validate_text_field(metadata.get("date"), "date"),
            album=validate_text_field(metadata.get("album"), "album"),
            instrument=validate_text_field(metadata.get("instrument"), "instrument"),
            payload=payload,
            original_filename=original_filename or "",
            duration=_optional_float(metadata.get("duration")),
        )

        collection = None
        if collection_id is not None:
            collection = self._require_collection(collection_id)
            self._check_collection_membership(collection, song_id, asset_type)
        elif collection_name and collection_name.strip():
            collection = self._find_or_create_collection(song, asset_type, collection_name.strip())

        file_id, _ = self._store_upload(song, asset_type, collection, entry)
        return self.db.get_file(file_id)

    def _find_or_create_collection(
        self, song: Mapping[str, Any], asset_type: AssetType, name: str
    ) -> Dict[str, Any]:
        for collection in self.db.get_collections(song["id"], asset_type):
            if collection["name"] == name:
                return collection
        return self.create_collection(song["id"], asset_type, name)

    def _check_collection_membership(
        self, collection: Mapping[str, Any], song_id: int, asset_type: AssetType
    ) -> None:
        if collection["song_id"] != song_id:
            raise ValidationError(
                "collection_id", f"collection {collection['id']} belongs to another song"
            )
        if collection["asset_type"] != asset_type.value:
            raise ValidationError(
                "collection_id",
                f"collection {collection['id']} holds {collection['asset_type']}, not {asset_type.value}",
            )

    def _store_upload(
        self,
        song: Mapping[str, Any],
        asset_type: AssetType,
        collection: Optional[Mapping[str, Any]],
        entry: FileEntry,
        taken: Optional[Set[int]] = None,
    ) -> Tuple[int, bool]:
        """Write an upload's bytes and insert or update its catalog row.

        An upload landing on a path already held by a file of the same song
        replaces that file's bytes and metadata; nothing is duplicated when
        a client re-submits the same upload. Files in ``taken`` are already
        spoken for by the current edit and are never replaced this way.

        Returns:
            (file id, True if a new row was created)
        """
        extension = file_extension(entry.original_filename)
        replaced = self.db.get_file(entry.id) if entry.id is not None else None
        if replaced is not None:
            metadata = {key: replaced.get(key) or "" for key in FILE_METADATA_FIELDS}
            metadata.update(entry.submitted_metadata())
        else:
            metadata = entry.metadata()
        target = resolve_file_path(song, asset_type, collection, metadata, extension)

        duration = 0.0
        if asset_type is AssetType.RECORDINGS:
            duration = read_duration(entry.payload, entry.original_filename)
        if not duration and entry.duration:
            duration = entry.duration

        fields = dict(
            metadata,
            duration=duration,
            extension=extension,
            file_path=target,
            collection_id=collection["id"] if collection else None,
        )

        holder = self.db.get_file_by_path(target)
        if replaced is None and holder is not None:
            if holder["song_id"] != song["id"]:
                raise ConflictError(f"Path {target} is held by file {holder['id']} of another song")
            if taken and holder["id"] in taken:
                raise ConflictError(
                    f"Path {target} is already taken by file {holder['id']} in this edit"
                )
            replaced = holder
        elif replaced is not None and holder is not None and holder["id"] != replaced["id"]:
            raise ConflictError(f"Path {target} is already held by file {holder['id']}")

        self.store.ensure_directory(str(resolve_directory(song, asset_type, collection)))
        self.store.put(target, entry.payload)

        if replaced is not None:
            try:
                self.db.update_file(replaced["id"], **fields)
            except sqlite3.Error as e:
                raise StorageError(
                    f"Stored {target} but could not update file {replaced['id']}: {e}"
                ) from e
            if replaced["file_path"] != target:
                self.store.delete(replaced["file_path"])
            logger.info(f"Replaced file {replaced['id']} at {target}")
            return replaced["id"], False

        try:
            file_id = self.db.create_file(song["id"], asset_type, **fields)
        except sqlite3.Error as e:
            self.store.delete(target)
            raise StorageError(f"Could not record upload {target}: {e}") from e
        logger.info(f"Stored new file {file_id} at {target}")
        return file_id, True

    def update_file(
        self,
        file_id: int,
        metadata: Optional[Mapping[str, Any]] = None,
        collection_id: Any = _UNSET,
    ) -> Dict[str, Any]:
        """Update a file's metadata and/or move it between collections.

        Args:
            file_id: File to update
            metadata: Changed descriptive fields (and optionally duration)
            collection_id: New collection id, None for ungrouped, omitted to
                keep the current collection

        Returns:
            The updated file record.

        Raises:
            NotFoundError: If the file, its collection or its stored bytes
                are missing (the row is then left unchanged).
            ConflictError: If another file already holds the target path.
        """
        file_row = self._require_file(file_id)
        song = self._require_song(file_row["song_id"])
        asset_type = AssetType.parse(file_row["asset_type"])

        fields: Dict[str, Any] = {}
        for key in FILE_METADATA_FIELDS:
            if metadata and key in metadata:
                fields[key] = validate_text_field(metadata[key], key)
        if metadata and metadata.get("duration") is not None:
            duration = _optional_float(metadata["duration"])
            if duration is None:
                raise ValidationError("duration", "must be a number")
            fields["duration"] = duration

        if collection_id is _UNSET:
            collection = self._collection_of(file_row)
        elif collection_id is None:
            collection = None
        else:
            collection = self._require_collection(collection_id)
            self._check_collection_membership(collection, song["id"], asset_type)
        fields["collection_id"] = collection["id"] if collection else None

        updated, _ = self._relocate(file_row, song, collection, fields)
        return updated

    def delete_files(self, file_ids: Iterable[int]) -> ReconcileReport:
        """Delete stored bytes and rows for a batch of files.

        Unknown ids and already-missing bytes are tolerated. A file whose
        bytes cannot be deleted keeps its row and is reported as a failure.
        """
        report = ReconcileReport()
        file_ids = list(file_ids)
        rows = self.db.get_files(file_ids)
        for file_id in sorted(set(file_ids) - {f["id"] for f in rows}):
            logger.warning(f"Batch delete: file {file_id} not found, skipping")

        deleted = []
        for file_row in rows:
            file_id = file_row["id"]
            try:
                if not self.store.delete(file_row["file_path"]):
                    logger.warning(f"Stored bytes for file {file_id} already gone: {file_row['file_path']}")
            except StorageError as e:
                logger.error(f"Could not delete bytes of file {file_id}: {e}")
                report.add_failure(file_id, str(e))
                continue
            deleted.append(file_id)

        self.db.delete_files(deleted)
        report.deleted_files.extend(deleted)
        if deleted:
            logger.info(f"Deleted {len(deleted)} file(s)")
        return report

    # ============================================================================
    # Moves
    # ============================================================================

    def _relocate(
        self,
        file_row: Dict[str, Any],
        song: Mapping[str, Any],
        collection: Optional[Mapping[str, Any]],
        fields: Dict[str, Any],
    ) -> Tuple[Dict[str, Any], bool]:
        """Apply field changes to a file, moving its bytes if its path changes.

        Returns:
            (updated row, True if the bytes moved)
        """
        merged = dict(file_row, **fields)
        target = self.expected_path(merged, song, collection)
        current = file_row["file_path"]
        changes = {k: v for k, v in fields.items() if file_row.get(k) != v}

        moved = False
        if target != current:
            holder = self.db.get_file_by_path(target)
            if holder is not None and holder["id"] != file_row["id"]:
                raise ConflictError(f"Path {target} is already held by file {holder['id']}")
            try:
                self.store.move(current, target)
            except FileNotFoundError:
                logger.warning(
                    f"Stored bytes of file {file_row['id']} missing at {current}; "
                    f"not moving to {target}, catalog row left unchanged"
                )
                raise NotFoundError("stored file", current) from None
            except FileExistsError:
                raise ConflictError(f"Path {target} already exists in storage") from None
            changes["file_path"] = target
            moved = True

        if not changes:
            return file_row, False

        try:
            self.db.update_file(file_row["id"], **changes)
        except sqlite3.Error as e:
            if moved:
                self._move_back(target, current)
            raise StorageError(f"Could not update file {file_row['id']}: {e}") from e
        if moved:
            logger.info(f"Moved file {file_row['id']}: {current} -> {target}")
        return dict(file_row, **changes), moved

    def _move_back(self, target: str, original: str) -> None:
        try:
            self.store.move(target, original)
        except (OSError, StorageError) as e:
            logger.error(f"Rollback failed, {original} now lives at {target}: {e}")

    def _move_isolated(
        self, file_row: Dict[str, Any], target: str, report: ReconcileReport
    ) -> bool:
        """Move one file to a target path as part of a cascade.

        Never raises; failures are logged and recorded in the report.
        """
        if target == file_row["file_path"]:
            return False
        try:
            holder = self.db.get_file_by_path(target)
            if holder is not None and holder["id"] != file_row["id"]:
                raise ConflictError(f"Path {target} is already held by file {holder['id']}")
            self.store.move(file_row["file_path"], target)
        except FileNotFoundError:
            logger.warning(
                f"Stored bytes of file {file_row['id']} missing at {file_row['file_path']}; skipping move"
            )
            report.add_failure(file_row["id"], f"stored file missing: {file_row['file_path']}")
            return False
        except PER_FILE_ERRORS as e:
            logger.error(f"Could not move file {file_row['id']} to {target}: {e}")
            report.add_failure(file_row["id"], str(e))
            return False

        try:
            self.db.update_file(file_row["id"], file_path=target)
        except sqlite3.Error as e:
            self._move_back(target, file_row["file_path"])
            logger.error(f"Could not record move of file {file_row['id']}: {e}")
            report.add_failure(file_row["id"], str(e))
            return False

        logger.info(f"Moved file {file_row['id']}: {file_row['file_path']} -> {target}")
        report.moved_files.append(file_row["id"])
        return True

    # ============================================================================
    # Reconciliation
    # ============================================================================

    def reconcile(self, song_id: int, edit: SongEdit) -> ReconcileReport:
        """Converge a song's stored state with a submitted edit.

        Song fields are applied first (including the rename cascade), then
        each asset type present in the edit is reconciled in turn.
        """
        self._require_song(song_id)
        for asset_type, entries in edit.assets.items():
            self._validate_entries(song_id, asset_type, entries)

        report = self.update_song(
            song_id,
            name=edit.name,
            description=edit.description,
            type=edit.type,
            status=edit.status,
        )
        for asset_type, entries in edit.assets.items():
            report.merge(self._reconcile_asset_type(song_id, asset_type, entries))
        return report

    def _validate_entries(
        self, song_id: int, asset_type: AssetType, entries: List[AssetEntry]
    ) -> None:
        """Reject a submission before anything is touched."""
        prior_files = {f["id"] for f in self.db.get_files_for_song(song_id, asset_type)}
        prior_collections = {c["id"]: c for c in self.db.get_collections(song_id, asset_type)}
        song = self._require_song(song_id)

        seen_files: Set[int] = set()
        seen_collections: Set[int] = set()
        directories: Dict[Any, str] = {}

        for entry in entries:
            if isinstance(entry, CollectionEntry):
                if entry.id is not None:
                    if entry.id not in prior_collections:
                        raise ValidationError(
                            "collection_id",
                            f"collection {entry.id} is not a {asset_type.value} collection of song {song_id}",
                        )
                    if entry.id in seen_collections:
                        raise ValidationError("collection_id", f"collection {entry.id} submitted twice")
                    seen_collections.add(entry.id)
                name = _final_collection_name(entry, prior_collections.get(entry.id))
                directory = resolve_directory(song, asset_type, {"id": entry.id or 0, "name": name})
                if directory in directories:
                    raise ValidationError(
                        "collection_name",
                        f"'{name}' and '{directories[directory]}' would share a directory",
                    )
                directories[directory] = name
                files = entry.files
            elif isinstance(entry, FileEntry):
                files = [entry]
            else:
                raise ValidationError("assets", f"unrecognized entry {type(entry).__name__}")

            for file_entry in files:
                if file_entry.payload is not None:
                    validate_upload_size(len(file_entry.payload), self.max_upload_bytes)
                if file_entry.id is None:
                    if file_entry.payload is None:
                        raise ValidationError("file", "a new file needs an upload")
                    continue
                if file_entry.id not in prior_files:
                    raise ValidationError(
                        "file_id",
                        f"file {file_entry.id} is not a {asset_type.value} file of song {song_id}",
                    )
                if file_entry.id in seen_files:
                    raise ValidationError("file_id", f"file {file_entry.id} submitted twice")
                seen_files.add(file_entry.id)

    def _park_collections(
        self,
        song: Mapping[str, Any],
        asset_type: AssetType,
        entries: List[AssetEntry],
        prior_collections: Dict[int, Dict[str, Any]],
        report: ReconcileReport,
    ) -> Dict[int, Dict[str, Any]]:
        """Move collections out of directories another submitted collection will use.

        This lets one edit swap two collection names, or give a new or
        renamed collection the name of one it removes. A parked collection
        is renamed to ``<name> (<id>)`` and then renamed again or removed
        by the rest of the pass.

        Returns:
            The prior collections with parked ones updated.
        """
        wanted: Dict[Any, Optional[int]] = {}
        for entry in entries:
            if isinstance(entry, CollectionEntry):
                name = _final_collection_name(entry, prior_collections.get(entry.id))
                wanted[resolve_directory(song, asset_type, {"id": entry.id or 0, "name": name})] = entry.id

        collections = dict(prior_collections)
        for collection in prior_collections.values():
            directory = resolve_directory(song, asset_type, collection)
            if directory not in wanted or wanted[directory] == collection["id"]:
                continue
            parking = f"{collection['name'] or 'collection'} ({collection['id']})"
            logger.info(f"Parking collection {collection['id']} as '{parking}'")
            collections[collection["id"]] = self._update_collection_row(
                collection, parking, None, report
            )
        return collections

    def _reconcile_asset_type(
        self, song_id: int, asset_type: AssetType, entries: List[AssetEntry]
    ) -> ReconcileReport:
        report = ReconcileReport()
        song = self._require_song(song_id)
        prior_file_ids = {f["id"] for f in self.db.get_files_for_song(song_id, asset_type)}
        prior_collections = {c["id"]: c for c in self.db.get_collections(song_id, asset_type)}

        # 1. Collections: clear directories being handed over, create new
        #    ones, rename/describe existing ones
        prior_collections = self._park_collections(
            song, asset_type, entries, prior_collections, report
        )
        placed: List[Tuple[FileEntry, Optional[Dict[str, Any]]]] = []
        kept_collections: Set[int] = set()
        for entry in entries:
            if isinstance(entry, FileEntry):
                placed.append((entry, None))
                continue
            if entry.id is None:
                collection = self.create_collection(
                    song_id, asset_type, entry.name or "", entry.description or ""
                )
                report.created_collections.append(collection["id"])
                if entry.client_ref:
                    report.client_refs[entry.client_ref] = collection["id"]
            else:
                collection = self._update_collection_row(
                    prior_collections[entry.id], entry.name, entry.description, report
                )
            kept_collections.add(collection["id"])
            placed.extend((file_entry, collection) for file_entry in entry.files)

        # 2. Metadata edits and moves between collections
        for file_entry, collection in placed:
            if file_entry.id is None or file_entry.is_upload:
                continue
            file_row = self.db.get_file(file_entry.id)
            fields = dict(
                file_entry.submitted_metadata(),
                collection_id=collection["id"] if collection else None,
            )
            try:
                updated, moved = self._relocate(file_row, song, collection, fields)
            except PER_FILE_ERRORS as e:
                logger.error(f"Could not update file {file_entry.id}: {e}")
                report.add_failure(file_entry.id, str(e))
                continue
            if updated is not file_row:
                report.updated_files.append(file_entry.id)
            if moved:
                report.moved_files.append(file_entry.id)

        # 3. New uploads and replacements
        new_file_ids: Set[int] = {e.id for e, _ in placed if e.id is not None}
        for file_entry, collection in placed:
            if not file_entry.is_upload:
                continue
            try:
                file_id, created = self._store_upload(
                    song, asset_type, collection, file_entry, taken=new_file_ids
                )
            except PER_FILE_ERRORS as e:
                logger.error(f"Could not store upload {file_entry.original_filename}: {e}")
                report.add_failure(file_entry.id, str(e))
                continue
            new_file_ids.add(file_id)
            (report.created_files if created else report.updated_files).append(file_id)
            if file_entry.client_ref:
                report.client_refs[file_entry.client_ref] = file_id

        # 4. Files that disappeared from the submission
        to_delete = sorted(prior_file_ids - new_file_ids)
        if to_delete:
            report.merge(self.delete_files(to_delete))

        # 5. Collections that disappeared; their remaining files become ungrouped
        for collection_id in sorted(set(prior_collections) - kept_collections):
            collection = self.db.get_collection(collection_id)
            if collection is not None:
                self._remove_collection(collection, report)

        return report

    # ============================================================================
    # Consistency
    # ============================================================================

    def find_inconsistencies(self) -> List[Dict[str, Any]]:
        """List files whose stored path or bytes disagree with the catalog.

        Returns:
            One dict per problem with ``file_id``, ``file_path``,
            ``expected_path`` and ``problem`` ("path" or "missing").
        """
        problems = []
        songs = {s["id"]: s for s in self.db.get_all_songs()}
        for file_row in self.db.get_all_files():
            song = songs.get(file_row["song_id"])
            if song is None:
                continue
            expected = self.expected_path(file_row, song)
            base = {
                "file_id": file_row["id"],
                "song_id": song["id"],
                "file_path": file_row["file_path"],
                "expected_path": expected,
            }
            if expected != file_row["file_path"]:
                problems.append(dict(base, problem="path"))
            if not self.store.exists(file_row["file_path"]):
                problems.append(dict(base, problem="missing"))
        return problems


def _final_collection_name(
    entry: CollectionEntry, current: Optional[Mapping[str, Any]]
) -> str:
    """Name a submitted collection ends up with; an omitted name keeps the stored one."""
    if entry.name is not None:
        return entry.name
    return current["name"] if current else ""


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
