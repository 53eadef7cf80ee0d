"""Test helper functions for Songbook tests.

Paths of the files created by the ``populated_db`` fixture, a generator
for small but real WAV payloads and a runner for the CLI subprocess.
"""

from __future__ import annotations

import io
import subprocess
import sys
import wave
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent

RECORDING_PATH = "Test Song/Recordings/Test Song - Live Takes -- 1998.mp3"
FLUTE_PATH = "Test Song/Sheet Music/Flute arrangement/Test Song - Flute.pdf"
PIANO_PATH = "Test Song/Sheet Music/Flute arrangement/Test Song - Piano.pdf"
LYRICS_PATH = "Test Song/Lyrics/Test Song - Verse.txt"


def make_wav(seconds: float = 1.0, rate: int = 8000) -> bytes:
    """Build a silent mono 16-bit WAV of the given length."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(rate)
        wav.writeframes(b"\x00\x00" * int(seconds * rate))
    return buffer.getvalue()


def run_cli(config_dir: Path, *args: str) -> subprocess.CompletedProcess:
    """Run ``songbook.main cli`` against a config directory.

    Global options such as ``--format json`` go before the command name.
    """
    return subprocess.run(
        [sys.executable, "-m", "songbook.main", "-d", str(config_dir), "cli", *args],
        capture_output=True,
        text=True,
        cwd=PROJECT_ROOT,
    )
