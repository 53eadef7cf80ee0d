"""File stores for Songbook.

This module handles the byte-level side of stored assets:
- Writing uploaded payloads under the uploads root
- Moving/renaming files when their song, collection or metadata changes
- Deleting files and whole song trees
- Pruning directories left empty by moves

All paths handed to a store are relative to its root and are built by
``core.paths``; stores never invent paths themselves.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path, PurePosixPath
from typing import Any, Optional

from .errors import StorageError

logger = logging.getLogger(__name__)


class FileStore:
    """Contract shared by all file store backends.

    ``delete`` is idempotent: deleting a missing path is not an error.
    ``move`` raises FileNotFoundError when the source is missing and
    FileExistsError when the target is taken; any other backend failure
    surfaces as StorageError.
    """

    def ensure_directory(self, path: str) -> None:
        raise NotImplementedError

    def put(self, path: str, data: bytes) -> None:
        raise NotImplementedError

    def get(self, path: str) -> bytes:
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def move(self, old_path: str, new_path: str) -> None:
        raise NotImplementedError

    def delete(self, path: str) -> bool:
        raise NotImplementedError

    def delete_tree(self, path: str) -> bool:
        raise NotImplementedError

    def prune_empty_directories(self, path: str) -> bool:
        raise NotImplementedError


class LocalFileStore(FileStore):
    """File store on the local filesystem.

    Files live at ``{root}/{relative path}``; the root is the configured
    uploads directory.
    """

    def __init__(self, root: Path | str) -> None:
        """Initialize the local file store.

        Args:
            root: Path to the uploads directory.
        """
        self.root = Path(root)

    def ensure_root(self) -> None:
        """Create the uploads directory if it doesn't exist."""
        self.root.mkdir(parents=True, exist_ok=True)

    def resolve(self, path: str) -> Path:
        """Absolute location of a relative path, confined to the root.

        Raises:
            StorageError: If the path would escape the uploads root.
        """
        relative = PurePosixPath(str(path).replace("\\", "/"))
        if relative.is_absolute() or ".." in relative.parts:
            raise StorageError(f"Refusing path outside uploads root: {path}")
        absolute = (self.root / Path(*relative.parts)) if relative.parts else self.root
        try:
            absolute.resolve().relative_to(self.root.resolve())
        except ValueError:
            raise StorageError(f"Refusing path outside uploads root: {path}") from None
        return absolute

    def ensure_directory(self, path: str) -> None:
        """Create a directory and its parents; no-op if it exists."""
        try:
            self.resolve(path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create directory {path}: {e}") from e

    def put(self, path: str, data: bytes) -> None:
        """Write bytes to a path, replacing any existing file there."""
        target = self.resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(f".{target.name}.part")
            tmp.write_bytes(data)
            os.replace(tmp, target)
        except OSError as e:
            raise StorageError(f"Could not write {path}: {e}") from e
        logger.debug(f"Wrote {len(data)} bytes to {path}")

    def get(self, path: str) -> bytes:
        """Read the bytes stored at a path.

        Raises:
            FileNotFoundError: If nothing is stored there.
        """
        target = self.resolve(path)
        if not target.is_file():
            raise FileNotFoundError(f"Stored file not found: {path}")
        return target.read_bytes()

    def get_absolute_path(self, path: str) -> Optional[Path]:
        """Absolute path of a stored file if it exists, None otherwise."""
        target = self.resolve(path)
        return target if target.is_file() else None

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    def move(self, old_path: str, new_path: str) -> None:
        """Move or rename a stored file, creating the target directory.

        Raises:
            FileNotFoundError: If the source doesn't exist.
            FileExistsError: If a different file already exists at the target.
        """
        source = self.resolve(old_path)
        dest = self.resolve(new_path)
        if not source.is_file():
            raise FileNotFoundError(f"Source file not found: {old_path}")
        if dest.exists() and not _same_file(source, dest):
            raise FileExistsError(f"Target already exists: {new_path}")
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(source), str(dest))
        except OSError as e:
            raise StorageError(f"Could not move {old_path} to {new_path}: {e}") from e

    def delete(self, path: str) -> bool:
        """Delete a stored file.

        Returns:
            True if the file was deleted, False if it didn't exist.
        """
        target = self.resolve(path)
        if not target.is_file():
            return False
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Could not delete {path}: {e}") from e
        return True

    def delete_tree(self, path: str) -> bool:
        """Recursively delete a directory.

        Returns:
            True if the directory was deleted, False if it didn't exist.
        """
        target = self.resolve(path)
        if target == self.root.resolve() or target == self.root:
            raise StorageError("Refusing to delete the uploads root")
        if not target.is_dir():
            return False
        try:
            shutil.rmtree(target)
        except OSError as e:
            raise StorageError(f"Could not delete directory {path}: {e}") from e
        return True

    def prune_empty_directories(self, path: str) -> bool:
        """Remove a directory tree if it contains no files.

        Returns:
            True if the directory was removed, False if it is missing or
            still holds files.
        """
        target = self.resolve(path)
        if not target.is_dir() or target.resolve() == self.root.resolve():
            return False
        if any(p.is_file() for p in target.rglob("*")):
            return False
        try:
            shutil.rmtree(target)
        except OSError as e:
            logger.warning(f"Could not prune empty directory {path}: {e}")
            return False
        return True


def _same_file(a: Path, b: Path) -> bool:
    """True if two paths name the same file (case-only renames on macOS)."""
    try:
        return a.samefile(b)
    except OSError:
        return False


def create_file_store(config: Any) -> FileStore:
    """Build the file store selected by the configuration.

    Args:
        config: Application Config

    Returns:
        A LocalFileStore over the uploads directory, or a DriveFileStore.
    """
    backend = config.get_storage_backend()
    if backend == "drive":
        from .drive_store import DriveFileStore

        logger.info("Using Google Drive file store")
        return DriveFileStore(
            config.get("drive_root_folder_id"),
            config.get("drive_access_token"),
        )
    if backend != "local":
        raise StorageError(f"Unknown storage backend: {backend}")

    store = LocalFileStore(config.get_uploads_directory())
    store.ensure_root()
    return store
