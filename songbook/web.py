#!/usr/bin/env python3
"""Web API for Songbook.

This module provides a RESTful HTTP API for songs, their collections and
their stored files. Uses only core/ modules.

Endpoints:
    GET    /api/health                    Health check
    GET    /api/songs                     List songs with nested assets
    POST   /api/songs                     Create a song
    GET    /api/songs/<id>                Get one song with nested assets
    PUT    /api/songs/<id>                Update a song and reconcile its assets
    DELETE /api/songs/<id>                Delete a song and all its files
    GET    /api/songs/<id>/collections    List a song's collections
    POST   /api/upload                    Upload one file
    POST   /api/collections               Create a collection
    PUT    /api/collections/<id>          Rename/describe a collection
    DELETE /api/collections/<id>          Delete a collection (files are kept)
    GET    /api/files/<id>                Get a file record
    PUT    /api/files/<id>                Edit file metadata or move it
    POST   /api/files/batch-delete        Delete several files
    GET    /file/<path>                   Raw bytes of a stored file

All /api endpoints return JSON responses. IDs are positive integers.

PUT /api/songs/<id> accepts either a JSON body or multipart/form-data with
a ``song`` field holding the JSON body and one file part per new upload.
Entries reference their part by name: ``{"upload": "<part name>", ...}``.
Asset keys (recordings, sheetMusic, lyrics, otherFiles) that are present
replace that asset type's state; absent keys leave it untouched.
"""

from __future__ import annotations

import argparse
import functools
import json
import logging
import mimetypes
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from flask import Flask, Response, jsonify, request, send_file
from flask_cors import CORS
from werkzeug.exceptions import RequestEntityTooLarge

from songbook.core.assets import collection_view, file_view, get_song_view, list_song_views
from songbook.core.config import Config
from songbook.core.database import Database
from songbook.core.edits import Upload, parse_song_edit
from songbook.core.errors import ConflictError, NotFoundError, StorageError
from songbook.core.file_store import FileStore, LocalFileStore, create_file_store
from songbook.core.models import FILE_METADATA_FIELDS
from songbook.core.reconciler import AssetReconciler
from songbook.core.validation import (
    ValidationError,
    validate_asset_type,
    validate_entity_id,
    validate_entity_ids,
    validate_optional_entity_id,
    validate_relative_path,
)

logger = logging.getLogger(__name__)

# Room for form fields and multipart framing on top of the upload limit
REQUEST_OVERHEAD_BYTES = 1024 * 1024

# Global instances, set up by create_app
db: Optional[Database] = None
store: Optional[FileStore] = None
reconciler: Optional[AssetReconciler] = None


def api_endpoint(func: Callable) -> Callable:
    """Decorator for consistent API error handling.

    Maps ValidationError to 400, NotFoundError to 404, ConflictError to
    409, an oversized request body to 413 and StorageError or anything
    unexpected to 500, all with JSON error bodies and logging.
    """
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except RequestEntityTooLarge:
            logger.warning(f"Request body too large in {func.__name__}")
            return jsonify({"error": "Request body too large"}), 413
        except ValidationError as e:
            logger.warning(f"Validation error in {func.__name__}: {e.field} - {e.message}")
            return jsonify({"error": f"Invalid {e.field}: {e.message}"}), 400
        except NotFoundError as e:
            return jsonify({"error": str(e)}), 404
        except ConflictError as e:
            logger.warning(f"Conflict in {func.__name__}: {e}")
            return jsonify({"error": str(e)}), 409
        except StorageError as e:
            logger.error(f"Storage error in {func.__name__}: {e}")
            return jsonify({"error": str(e)}), 500
        except Exception as e:
            logger.exception(f"Error in {func.__name__}: {e}")
            return jsonify({"error": str(e)}), 500
    return wrapper


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("body", "a JSON object is required")
    return data


def _song_or_404(song_id: int) -> Dict[str, Any]:
    song = get_song_view(db, song_id)
    if song is None:
        raise NotFoundError("song", song_id)
    return song


def _read_song_submission() -> tuple[Any, Dict[str, Upload]]:
    """Song body and uploaded parts from a JSON or multipart request."""
    if request.mimetype == "multipart/form-data":
        raw = request.form.get("song")
        if raw is None:
            raise ValidationError("song", "multipart requests need a 'song' field")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError("song", f"not valid JSON: {e.msg}") from None
        uploads = {
            part: (storage.filename or "", storage.read())
            for part, storage in request.files.items()
        }
        return data, uploads
    return _json_body(), {}


def create_app(config_dir: Optional[Path] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        config_dir: Custom configuration directory (default: None)

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    CORS(app)  # Enable CORS for all routes

    # Initialize config, database, file store and reconciler
    config = Config(config_dir=config_dir)
    db_path = config.get_database_file()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    global db, store, reconciler
    db = Database(db_path)
    store = create_file_store(config)
    reconciler = AssetReconciler(db, store, config.get_max_upload_bytes())

    # Werkzeug refuses larger bodies before any part is read into memory
    app.config["MAX_CONTENT_LENGTH"] = config.get_max_upload_bytes() + REQUEST_OVERHEAD_BYTES

    logger.info(f"Web API initialized with database: {db_path}")

    # Error handlers
    @app.errorhandler(404)
    def not_found(error: Any) -> tuple[Response, int]:
        """Handle 404 errors."""
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error: Any) -> tuple[Response, int]:
        """Handle 405 errors."""
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(413)
    def request_too_large(error: Any) -> tuple[Response, int]:
        """Handle 413 errors."""
        return jsonify({"error": "Request body too large"}), 413

    @app.errorhandler(500)
    def internal_error(error: Any) -> tuple[Response, int]:
        """Handle 500 errors."""
        logger.error(f"Internal error: {error}")
        return jsonify({"error": "Internal server error"}), 500

    # Songs
    @app.route("/api/songs", methods=["GET"])
    @api_endpoint
    def get_songs() -> Response:
        """Get all songs with nested assets."""
        return jsonify(list_song_views(db))

    @app.route("/api/songs", methods=["POST"])
    @api_endpoint
    def create_song() -> tuple[Response, int]:
        """Create a new song."""
        data = _json_body()
        song = reconciler.create_song(
            name=data.get("name", ""),
            description=data.get("description", ""),
            type=data.get("type", ""),
            status=data.get("status") or "Active",
        )
        logger.info(f"Created song {song['id']} via API")
        return jsonify(_song_or_404(song["id"])), 201

    @app.route("/api/songs/<song_id>", methods=["GET"])
    @api_endpoint
    def get_song(song_id: str) -> tuple[Response, int]:
        """Get specific song by ID."""
        return jsonify(_song_or_404(validate_entity_id(song_id, "song_id"))), 200

    @app.route("/api/songs/<song_id>", methods=["PUT"])
    @api_endpoint
    def update_song(song_id: str) -> tuple[Response, int]:
        """Update a song and reconcile the submitted asset lists."""
        song_id_int = validate_entity_id(song_id, "song_id")
        _song_or_404(song_id_int)
        data, uploads = _read_song_submission()
        edit = parse_song_edit(data, uploads)
        report = reconciler.reconcile(song_id_int, edit)
        logger.info(f"Updated song {song_id_int} via API ({len(report.failures)} failure(s))")
        return jsonify(dict(_song_or_404(song_id_int), report=report.to_dict())), 200

    @app.route("/api/songs/<song_id>", methods=["DELETE"])
    @api_endpoint
    def delete_song(song_id: str) -> tuple[Response, int]:
        """Delete a song with its collections, files and stored bytes."""
        song_id_int = validate_entity_id(song_id, "song_id")
        report = reconciler.delete_song(song_id_int)
        return jsonify({"message": f"Song {song_id_int} deleted", "report": report.to_dict()}), 200

    @app.route("/api/songs/<song_id>/collections", methods=["GET"])
    @api_endpoint
    def get_song_collections(song_id: str) -> tuple[Response, int]:
        """List a song's collections, optionally of one asset type."""
        song_id_int = validate_entity_id(song_id, "song_id")
        if db.get_song(song_id_int) is None:
            raise NotFoundError("song", song_id_int)
        asset_type = request.args.get("assetType")
        if asset_type:
            collections = db.get_collections(song_id_int, validate_asset_type(asset_type, "assetType"))
        else:
            collections = db.get_collections_for_song(song_id_int)
        return jsonify([
            collection_view(c, db.get_files_for_collection(c["id"])) for c in collections
        ]), 200

    # Uploads
    @app.route("/api/upload", methods=["POST"])
    @api_endpoint
    def upload_file() -> tuple[Response, int]:
        """Upload one file into a song (optionally into a collection)."""
        uploaded = request.files.get("file")
        if uploaded is None:
            raise ValidationError("file", "is required")
        song_id = validate_entity_id(request.form.get("songId"), "songId")
        asset_type = validate_asset_type(request.form.get("assetType"), "assetType")
        collection_id = validate_optional_entity_id(request.form.get("collectionId"), "collectionId")

        metadata: Dict[str, Any] = {}
        raw_metadata = request.form.get("metadata")
        if raw_metadata:
            try:
                metadata = json.loads(raw_metadata)
            except json.JSONDecodeError as e:
                raise ValidationError("metadata", f"not valid JSON: {e.msg}") from None
            if not isinstance(metadata, dict):
                raise ValidationError("metadata", "must be a JSON object")
        for key in FILE_METADATA_FIELDS + ("duration",):
            if key in request.form:
                metadata[key] = request.form[key]

        file_row = reconciler.upload_file(
            song_id,
            asset_type,
            uploaded.read(),
            uploaded.filename or "",
            metadata,
            collection_id=collection_id,
            collection_name=request.form.get("collectionName"),
        )
        return jsonify({"id": file_row["id"], "filePath": file_row["file_path"], "file": file_view(file_row)}), 201

    # Collections
    @app.route("/api/collections", methods=["POST"])
    @api_endpoint
    def create_collection() -> tuple[Response, int]:
        """Create an empty collection."""
        data = _json_body()
        collection = reconciler.create_collection(
            validate_entity_id(data.get("songId"), "songId"),
            validate_asset_type(data.get("assetType"), "assetType"),
            data.get("name", ""),
            data.get("description", ""),
        )
        return jsonify(collection_view(collection, [])), 201

    @app.route("/api/collections/<collection_id>", methods=["PUT"])
    @api_endpoint
    def update_collection(collection_id: str) -> tuple[Response, int]:
        """Rename and/or describe a collection."""
        collection_id_int = validate_entity_id(collection_id, "collection_id")
        data = _json_body()
        report = reconciler.update_collection(
            collection_id_int, name=data.get("name"), description=data.get("description")
        )
        collection = db.get_collection(collection_id_int)
        view = collection_view(collection, db.get_files_for_collection(collection_id_int))
        return jsonify(dict(view, report=report.to_dict())), 200

    @app.route("/api/collections/<collection_id>", methods=["DELETE"])
    @api_endpoint
    def delete_collection(collection_id: str) -> tuple[Response, int]:
        """Delete a collection; its files become ungrouped."""
        collection_id_int = validate_entity_id(collection_id, "collection_id")
        report = reconciler.delete_collection(collection_id_int)
        return jsonify({
            "message": f"Collection {collection_id_int} deleted",
            "report": report.to_dict(),
        }), 200

    # Files
    @app.route("/api/files/<file_id>", methods=["GET"])
    @api_endpoint
    def get_file(file_id: str) -> tuple[Response, int]:
        """Get a file record."""
        file_id_int = validate_entity_id(file_id, "file_id")
        file_row = db.get_file(file_id_int)
        if file_row is None:
            raise NotFoundError("file", file_id_int)
        return jsonify(file_view(file_row)), 200

    @app.route("/api/files/<file_id>", methods=["PUT"])
    @api_endpoint
    def update_file(file_id: str) -> tuple[Response, int]:
        """Edit file metadata and/or move it to another collection.

        ``collectionId`` moves the file; null makes it ungrouped; omitting
        the key keeps its current collection.
        """
        file_id_int = validate_entity_id(file_id, "file_id")
        data = _json_body()
        kwargs: Dict[str, Any] = {}
        if "collectionId" in data:
            kwargs["collection_id"] = validate_optional_entity_id(data["collectionId"], "collectionId")
        file_row = reconciler.update_file(file_id_int, data, **kwargs)
        return jsonify(file_view(file_row)), 200

    @app.route("/api/files/batch-delete", methods=["POST"])
    @api_endpoint
    def batch_delete_files() -> tuple[Response, int]:
        """Delete several files by id; unknown ids are skipped."""
        data = _json_body()
        file_ids = validate_entity_ids(data.get("fileIds"), "fileIds")
        report = reconciler.delete_files(file_ids)
        return jsonify({"deleted": report.deleted_files, "report": report.to_dict()}), 200

    @app.route("/file/<path:relative_path>", methods=["GET"])
    @api_endpoint
    def serve_file(relative_path: str) -> Any:
        """Stream the raw bytes of a stored file."""
        relative_path = validate_relative_path(relative_path)
        if isinstance(store, LocalFileStore):
            absolute = store.get_absolute_path(relative_path)
            if absolute is None:
                raise NotFoundError("stored file", relative_path)
            return send_file(absolute)
        try:
            data = store.get(relative_path)
        except FileNotFoundError:
            raise NotFoundError("stored file", relative_path) from None
        mimetype = mimetypes.guess_type(relative_path)[0] or "application/octet-stream"
        return Response(data, mimetype=mimetype)

    @app.route("/api/health", methods=["GET"])
    def health_check() -> tuple[Response, int]:
        """Health check endpoint.

        Returns:
            JSON response indicating service health
        """
        return jsonify({"status": "ok"}), 200

    return app


def add_web_subparser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add web subparser and its arguments.

    Args:
        subparsers: Parent subparsers object to add web parser to
    """
    web_parser = subparsers.add_parser(
        "web",
        help="Start web API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    web_parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )

    web_parser.add_argument(
        "--port",
        type=int,
        default=5000,
        help="Port to bind to (default: 5000)"
    )

    web_parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )


def run(config_dir: Optional[Path], args: argparse.Namespace) -> int:
    """Run web server with given arguments.

    Args:
        config_dir: Custom configuration directory or None for default
        args: Parsed command-line arguments (host, port, debug)

    Returns:
        Exit code (0 for success)
    """
    logger.info("Starting Songbook Web API")
    if config_dir:
        logger.info(f"Using custom config directory: {config_dir}")

    app = create_app(config_dir=config_dir)
    app.run(
        host=getattr(args, "host", "127.0.0.1"),
        port=getattr(args, "port", 5000),
        debug=getattr(args, "debug", False),
    )

    return 0
