"""Domain errors raised by the catalog, the file stores and the reconciler."""

from __future__ import annotations

from typing import Any


class SongbookError(Exception):
    """Base exception for Songbook operations."""


class NotFoundError(SongbookError, LookupError):
    """Raised when a song, collection or file id does not exist."""

    def __init__(self, kind: str, identifier: Any) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind.capitalize()} {identifier} not found")


class ConflictError(SongbookError):
    """Raised when a target path or directory is already taken."""


class StorageError(SongbookError):
    """Raised when a file store backend fails (disk or remote API)."""
