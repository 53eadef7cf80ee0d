"""Pytest fixtures for integration tests.

Provides a web client over an empty catalog and a CLI runner sharing the
same config directory, for cross-interface testing.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from songbook.core.database import Database
from tests.helpers import run_cli


@pytest.fixture
def cli_runner(test_config_dir: Path):
    """Create a CLI runner function for integration tests.

    Returns:
        Function that runs CLI commands against the test config directory.
    """

    def run(*args: str) -> subprocess.CompletedProcess:
        """Run CLI command with given arguments.

        Args:
            *args: CLI arguments (e.g., "--format", "json", "list-songs")
        """
        return run_cli(test_config_dir, *args)

    return run


@pytest.fixture
def web_client(test_config_dir: Path):
    """Create Flask test client over an empty catalog.

    Args:
        test_config_dir: Temporary config directory

    Returns:
        Flask test client.
    """
    from songbook.web import create_app

    app = create_app(config_dir=test_config_dir)
    app.config["TESTING"] = True

    with app.test_client() as client:
        yield client


@pytest.fixture
def catalog(test_db_path: Path, web_client):
    """Direct catalog access next to the running app, for checking rows."""
    db = Database(test_db_path)
    yield db
    db.close()
