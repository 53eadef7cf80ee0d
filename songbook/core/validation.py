"""Input validation for Songbook.

This module provides validation functions for all user inputs.
All validators raise ValidationError with descriptive messages.

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:
    from .models import AssetType

__all__ = [
    "ValidationError",
    "validate_entity_id",
    "validate_optional_entity_id",
    "validate_entity_ids",
    "validate_song_name",
    "validate_text_field",
    "validate_upload_size",
    "validate_relative_path",
    "validate_asset_type",
    "DEFAULT_MAX_UPLOAD_BYTES",
]

# Limits
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024
MAX_NAME_LENGTH = 200
MAX_TEXT_LENGTH = 10_000
MAX_BATCH_SIZE = 1000


class ValidationError(ValueError):
    """Validation error with field and message attributes."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"

    def __repr__(self) -> str:
        return f"ValidationError(field='{self.field}', message='{self.message}')"


def validate_entity_id(value: Any, field_name: str = "id") -> int:
    """Validate and convert an entity ID (song, collection, file).

    Accepts positive integers and decimal strings. Booleans are rejected
    even though they are ints in Python.
    """
    if isinstance(value, bool):
        raise ValidationError(field_name, "must be an integer, got bool")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped.isdigit():
            raise ValidationError(field_name, f"must be an integer, got '{value[:20]}'")
        result = int(stripped)
    else:
        raise ValidationError(
            field_name, f"must be an integer, got {type(value).__name__}"
        )
    if result <= 0:
        raise ValidationError(field_name, f"must be positive, got {result}")
    return result


def validate_optional_entity_id(value: Any, field_name: str = "id") -> Optional[int]:
    """Validate an entity ID that may be absent (None or empty string)."""
    if value is None or value == "":
        return None
    return validate_entity_id(value, field_name)


def validate_entity_ids(values: Any, field_name: str = "ids") -> List[int]:
    """Validate a list of entity IDs."""
    if not isinstance(values, list):
        raise ValidationError(field_name, f"must be a list, got {type(values).__name__}")
    if len(values) > MAX_BATCH_SIZE:
        raise ValidationError(
            field_name, f"cannot contain more than {MAX_BATCH_SIZE} items (got {len(values)})"
        )
    result = []
    for i, value in enumerate(values):
        try:
            result.append(validate_entity_id(value, field_name))
        except ValidationError as e:
            raise ValidationError(field_name, f"item {i}: {e.message}") from None
    return result


def validate_text_field(
    value: Any, field_name: str, max_length: int = MAX_TEXT_LENGTH
) -> str:
    """Validate a free-text field; None becomes the empty string."""
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        raise ValidationError(field_name, f"must be a string, got {type(value).__name__}")
    if len(value) > max_length:
        raise ValidationError(
            field_name, f"cannot exceed {max_length} characters (got {len(value)})"
        )
    return value


def validate_song_name(name: Any) -> str:
    """Validate a song name.

    Empty names are allowed: such songs are stored under an id-based
    directory until they get a name.
    """
    return validate_text_field(name, "name", MAX_NAME_LENGTH).strip()


def validate_upload_size(size: int, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> None:
    """Reject uploads larger than the configured limit."""
    if size > max_bytes:
        raise ValidationError(
            "file", f"exceeds maximum upload size of {max_bytes} bytes (got {size})"
        )


def validate_relative_path(path: Any, field_name: str = "path") -> str:
    """Validate a relative storage path as received from a client.

    Rejects absolute paths and any '..' segment so a path can never
    leave the uploads root.
    """
    if not isinstance(path, str):
        raise ValidationError(field_name, f"must be a string, got {type(path).__name__}")
    normalized = path.replace("\\", "/").strip()
    if not normalized:
        raise ValidationError(field_name, "cannot be empty")
    if normalized.startswith("/"):
        raise ValidationError(field_name, "must be relative")
    parts = PurePosixPath(normalized).parts
    if any(part == ".." for part in parts):
        raise ValidationError(field_name, "cannot contain '..' segments")
    return normalized


def validate_asset_type(value: Any, field_name: str = "asset_type") -> AssetType:
    """Validate an asset type given in any accepted spelling."""
    from .models import AssetType

    if value is None or value == "":
        raise ValidationError(field_name, "is required")
    return AssetType.parse(value, field_name)
