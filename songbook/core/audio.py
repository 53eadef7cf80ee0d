"""Audio metadata extraction for uploaded recordings.

Only the duration is read. Failure to read it never blocks an upload:
the caller stores 0 and moves on.
"""

from __future__ import annotations

import io
import logging
from typing import Optional

from mutagen import File as MutagenFile

logger = logging.getLogger(__name__)

# Supported audio file formats for duration extraction
AUDIO_FILE_FORMATS = frozenset(["mp3", "wav", "flac", "ogg", "opus", "m4a", "aac", "aiff", "aif"])


def is_supported_audio_format(filename: str) -> bool:
    """Check if a filename has a supported audio format extension.

    Args:
        filename: The filename to check.

    Returns:
        True if the extension is supported, False otherwise.
    """
    if "." not in filename:
        return False
    ext = filename.rsplit(".", 1)[-1].lower()
    return ext in AUDIO_FILE_FORMATS


def read_duration(data: bytes, filename: str = "") -> float:
    """Read the duration of an audio payload from its container metadata.

    Args:
        data: Raw bytes of the uploaded file
        filename: Original filename, only used for log messages

    Returns:
        Duration in seconds, or 0.0 if it cannot be determined.
    """
    if not data:
        return 0.0
    try:
        audio_file = MutagenFile(io.BytesIO(data))
    except Exception as e:
        logger.warning(f"Could not read audio metadata from {filename or 'upload'}: {e}")
        return 0.0

    if audio_file is None or getattr(audio_file, "info", None) is None:
        logger.info(f"No audio metadata recognised in {filename or 'upload'}")
        return 0.0

    length: Optional[float] = getattr(audio_file.info, "length", None)
    if not length or length < 0:
        return 0.0
    return float(length)
