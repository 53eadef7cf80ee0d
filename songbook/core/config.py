"""Configuration management for Songbook.

This module handles loading and saving application configuration to/from
a JSON file. The config directory can be customized via CLI argument, and
the database and uploads locations via environment variables.

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .validation import DEFAULT_MAX_UPLOAD_BYTES, ValidationError

logger = logging.getLogger(__name__)

__all__ = ["Config", "KNOWN_KEYS", "STORAGE_BACKENDS"]

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "songbook"
CONFIG_FILE_NAME = "config.json"

STORAGE_BACKENDS = ("local", "drive")

KNOWN_KEYS = frozenset([
    "database_file",
    "uploads_directory",
    "storage_backend",
    "drive_root_folder_id",
    "drive_access_token",
    "max_upload_bytes",
    "default_interface",
])

# Environment variables that take precedence over the config file
ENV_OVERRIDES = {
    "database_file": "SONGBOOK_DB_PATH",
    "uploads_directory": "SONGBOOK_UPLOADS_DIR",
}


class Config:
    """Manages application configuration stored in JSON format.

    Attributes:
        config_dir: Path to the configuration directory
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize configuration manager.

        Args:
            config_dir: Custom config directory path. If None, uses ~/.config/songbook/
        """
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_data = self.load_config()

    @property
    def config_file(self) -> Path:
        """Get the config file path."""
        return self.config_dir / CONFIG_FILE_NAME

    def _default_config(self) -> Dict[str, Any]:
        return {
            "database_file": str((self.config_dir / "songs.db").resolve()),
            "uploads_directory": str((self.config_dir / "uploads").resolve()),
            "storage_backend": "local",
            "drive_root_folder_id": None,
            "drive_access_token": None,
            "max_upload_bytes": DEFAULT_MAX_UPLOAD_BYTES,
            "default_interface": "web",
        }

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file, creating it with defaults if missing.

        Returns:
            Configuration dictionary
        """
        defaults = self._default_config()
        if not self.config_file.exists():
            self.save_config(defaults)
            return defaults

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not read {self.config_file} ({e}), using defaults")
            return defaults

        if not isinstance(loaded, dict):
            logger.warning(f"Ignoring non-object config in {self.config_file}")
            return defaults

        defaults.update({k: v for k, v in loaded.items() if k in KNOWN_KEYS})
        return defaults

    def save_config(self, config: Dict[str, Any]) -> None:
        """Save configuration to file."""
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2, ensure_ascii=False)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value, honouring environment overrides."""
        env_var = ENV_OVERRIDES.get(key)
        if env_var and os.environ.get(env_var):
            return os.environ[env_var]
        value = self.config_data.get(key)
        return value if value is not None else default

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value and save to file.

        Raises:
            ValidationError: If the key is unknown or the value is invalid.
        """
        if key not in KNOWN_KEYS:
            raise ValidationError("config_key", f"unknown key '{key}'")
        if key == "storage_backend" and value not in STORAGE_BACKENDS:
            raise ValidationError(
                "storage_backend", f"must be one of {', '.join(STORAGE_BACKENDS)}"
            )
        if key == "max_upload_bytes":
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise ValidationError("max_upload_bytes", "must be an integer") from None
        self.config_data[key] = value
        self.save_config(self.config_data)

    def get_config_dir(self) -> Path:
        """Get the configuration directory path."""
        return self.config_dir

    def get_database_file(self) -> Path:
        """Get the catalog database path."""
        return Path(self.get("database_file"))

    def get_uploads_directory(self) -> Path:
        """Get the root directory for stored files."""
        return Path(self.get("uploads_directory"))

    def get_storage_backend(self) -> str:
        """Get the configured file store backend name."""
        return self.get("storage_backend", "local")

    def get_max_upload_bytes(self) -> int:
        """Get the upload size limit in bytes."""
        return int(self.get("max_upload_bytes", DEFAULT_MAX_UPLOAD_BYTES))
