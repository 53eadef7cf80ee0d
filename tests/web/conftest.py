"""Pytest fixtures for web API tests.

Provides a Flask test client over the populated catalog and file store.
"""

from __future__ import annotations

import pytest
from pathlib import Path
from typing import Generator

from flask import Flask
from flask.testing import FlaskClient

from songbook.web import create_app
from songbook.core.database import Database


@pytest.fixture
def web_app(test_config_dir: Path, populated_db: Database) -> Generator[Flask, None, None]:
    """Create Flask app for testing.

    Args:
        test_config_dir: Config directory holding songs.db and uploads/
        populated_db: Populated database fixture

    Yields:
        Flask application instance
    """
    app = create_app(config_dir=test_config_dir)
    app.config["TESTING"] = True
    yield app


@pytest.fixture
def client(web_app: Flask) -> FlaskClient:
    """Create Flask test client.

    Args:
        web_app: Flask application

    Returns:
        Flask test client for making requests
    """
    return web_app.test_client()
