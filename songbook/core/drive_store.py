"""Google Drive file store for Songbook.

Stores files in a Google Drive folder tree mirroring the local layout:
every relative path segment is a Drive folder under the configured root
folder, and the last segment is the file name. Folders are looked up by
name before being created so repeated calls never produce duplicates.

Talks to the Drive v3 REST API directly with ``requests``; the caller
supplies an OAuth access token.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional

import requests

from .errors import StorageError
from .file_store import FileStore

logger = logging.getLogger(__name__)

DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
REQUEST_TIMEOUT = 30


def _escape_query(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _split(path: str) -> List[str]:
    parts = [p for p in PurePosixPath(str(path).replace("\\", "/")).parts if p not in ("", "/")]
    if ".." in parts:
        raise StorageError(f"Refusing path outside the Drive root: {path}")
    return parts


class DriveFileStore(FileStore):
    """File store backed by a Google Drive folder."""

    def __init__(
        self,
        root_folder_id: str,
        access_token: str,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize the Drive store.

        Args:
            root_folder_id: Drive id of the folder that plays the uploads root
            access_token: OAuth bearer token with Drive scope
            session: HTTP session to use, mostly for tests
        """
        if not root_folder_id:
            raise StorageError("Drive storage needs drive_root_folder_id")
        if not access_token:
            raise StorageError("Drive storage needs drive_access_token")
        self.root_folder_id = root_folder_id
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {access_token}"})

    # ============================================================================
    # HTTP
    # ============================================================================

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send a request, turning transport and HTTP errors into StorageError.

        A 404 response is returned to the caller instead of raising.
        """
        kwargs.setdefault("timeout", REQUEST_TIMEOUT)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"Drive request {method} {url} failed: {e}")
            raise StorageError(f"Drive request failed: {e}") from e

        if response.status_code == 404:
            return response
        if response.status_code >= 400:
            try:
                message = response.json().get("error", {}).get("message", response.reason)
            except ValueError:
                message = response.reason
            logger.error(f"Drive request {method} {url} returned {response.status_code}: {message}")
            raise StorageError(f"Drive error {response.status_code}: {message}")
        return response

    def _find_child(
        self, parent_id: str, name: str, folder: Optional[bool] = None
    ) -> Optional[Dict[str, Any]]:
        query = f"name = '{_escape_query(name)}' and '{parent_id}' in parents and trashed = false"
        if folder is True:
            query += f" and mimeType = '{FOLDER_MIME_TYPE}'"
        elif folder is False:
            query += f" and mimeType != '{FOLDER_MIME_TYPE}'"
        response = self._request(
            "GET",
            f"{DRIVE_API_URL}/files",
            params={"q": query, "fields": "files(id, name, mimeType, parents)", "pageSize": 10},
        )
        if response.status_code == 404:
            return None
        files = response.json().get("files", [])
        return files[0] if files else None

    def _list_children(self, parent_id: str) -> List[Dict[str, Any]]:
        children: List[Dict[str, Any]] = []
        page_token = None
        while True:
            params = {
                "q": f"'{parent_id}' in parents and trashed = false",
                "fields": "nextPageToken, files(id, name, mimeType)",
                "pageSize": 100,
            }
            if page_token:
                params["pageToken"] = page_token
            response = self._request("GET", f"{DRIVE_API_URL}/files", params=params)
            if response.status_code == 404:
                return children
            body = response.json()
            children.extend(body.get("files", []))
            page_token = body.get("nextPageToken")
            if not page_token:
                return children

    def _create_folder(self, parent_id: str, name: str) -> str:
        response = self._request(
            "POST",
            f"{DRIVE_API_URL}/files",
            json={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
            params={"fields": "id"},
        )
        folder_id = response.json()["id"]
        logger.debug(f"Created Drive folder '{name}' ({folder_id})")
        return folder_id

    def _folder_id(self, parts: List[str], create: bool = False) -> Optional[str]:
        """Walk (and optionally create) a folder chain below the root."""
        current = self.root_folder_id
        for name in parts:
            child = self._find_child(current, name, folder=True)
            if child is None:
                if not create:
                    return None
                current = self._create_folder(current, name)
            else:
                current = child["id"]
        return current

    def _file(self, path: str) -> Optional[Dict[str, Any]]:
        parts = _split(path)
        if not parts:
            return None
        parent = self._folder_id(parts[:-1])
        if parent is None:
            return None
        return self._find_child(parent, parts[-1], folder=False)

    # ============================================================================
    # FileStore
    # ============================================================================

    def ensure_directory(self, path: str) -> None:
        self._folder_id(_split(path), create=True)

    def put(self, path: str, data: bytes) -> None:
        """Upload bytes, replacing the content of an existing file."""
        parts = _split(path)
        if not parts:
            raise StorageError("Cannot store a file at the Drive root itself")
        parent = self._folder_id(parts[:-1], create=True)
        existing = self._find_child(parent, parts[-1], folder=False)
        if existing is None:
            response = self._request(
                "POST",
                f"{DRIVE_API_URL}/files",
                json={"name": parts[-1], "parents": [parent]},
                params={"fields": "id"},
            )
            file_id = response.json()["id"]
        else:
            file_id = existing["id"]
        self._request(
            "PATCH",
            f"{DRIVE_UPLOAD_URL}/files/{file_id}",
            params={"uploadType": "media"},
            data=data,
            headers={"Content-Type": "application/octet-stream"},
        )
        logger.debug(f"Uploaded {len(data)} bytes to Drive at {path}")

    def get(self, path: str) -> bytes:
        entry = self._file(path)
        if entry is None:
            raise FileNotFoundError(f"Stored file not found: {path}")
        response = self._request("GET", f"{DRIVE_API_URL}/files/{entry['id']}", params={"alt": "media"})
        if response.status_code == 404:
            raise FileNotFoundError(f"Stored file not found: {path}")
        return response.content

    def exists(self, path: str) -> bool:
        parts = _split(path)
        if not parts:
            return True
        parent = self._folder_id(parts[:-1])
        return parent is not None and self._find_child(parent, parts[-1]) is not None

    def move(self, old_path: str, new_path: str) -> None:
        """Move a file by swapping its parent folder and renaming it."""
        entry = self._file(old_path)
        if entry is None:
            raise FileNotFoundError(f"Source file not found: {old_path}")
        new_parts = _split(new_path)
        if not new_parts:
            raise StorageError("Cannot move a file onto the Drive root itself")
        new_parent = self._folder_id(new_parts[:-1], create=True)
        existing = self._find_child(new_parent, new_parts[-1], folder=False)
        if existing is not None and existing["id"] != entry["id"]:
            raise FileExistsError(f"Target already exists: {new_path}")

        old_parents = ",".join(entry.get("parents") or [])
        params = {"fields": "id, parents"}
        if new_parent not in (entry.get("parents") or []):
            params["addParents"] = new_parent
            if old_parents:
                params["removeParents"] = old_parents
        response = self._request(
            "PATCH",
            f"{DRIVE_API_URL}/files/{entry['id']}",
            params=params,
            json={"name": new_parts[-1]},
        )
        if response.status_code == 404:
            raise FileNotFoundError(f"Source file not found: {old_path}")

    def delete(self, path: str) -> bool:
        entry = self._file(path)
        if entry is None:
            return False
        response = self._request("DELETE", f"{DRIVE_API_URL}/files/{entry['id']}")
        return response.status_code != 404

    def delete_tree(self, path: str) -> bool:
        parts = _split(path)
        if not parts:
            raise StorageError("Refusing to delete the Drive root folder")
        folder_id = self._folder_id(parts)
        if folder_id is None:
            return False
        response = self._request("DELETE", f"{DRIVE_API_URL}/files/{folder_id}")
        return response.status_code != 404

    def _holds_files(self, folder_id: str) -> bool:
        for child in self._list_children(folder_id):
            if child.get("mimeType") != FOLDER_MIME_TYPE:
                return True
            if self._holds_files(child["id"]):
                return True
        return False

    def prune_empty_directories(self, path: str) -> bool:
        parts = _split(path)
        if not parts:
            return False
        folder_id = self._folder_id(parts)
        if folder_id is None or self._holds_files(folder_id):
            return False
        response = self._request("DELETE", f"{DRIVE_API_URL}/files/{folder_id}")
        return response.status_code != 404
