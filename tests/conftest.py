import sqlite3

import pytest
from fastapi.testclient import TestClient

from adapters.db.sqlite_adapter import SQLiteDataSource
from app.dependencies import get_data_source
from app.main import app
from app.settings import Settings, get_settings


SCHEMA = """
CREATE TABLE `user` (
    `name` varchar(20) DEFAULT NULL,
    `id` INTEGER PRIMARY KEY AUTOINCREMENT,
    `email` varchar(255) DEFAULT NULL UNIQUE
);
CREATE TABLE `settings` (
    `id` INTEGER PRIMARY KEY,
    `user_id` int(11) DEFAULT NULL,
    `setting` varchar(255) NOT NULL,
    `enabled` tinyint(1) DEFAULT NULL
);
"""


def make_db(db_path) -> None:
    """Create the user/settings fixture tables."""
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "dapi_test.db"
    make_db(path)
    return path


@pytest.fixture
def source(db_path):
    return SQLiteDataSource(str(db_path), timeout=1.0)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def client(source, settings):
    """TestClient wired to a fresh SQLite database."""
    prev = dict(app.dependency_overrides)
    app.dependency_overrides[get_data_source] = lambda: source
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        app.dependency_overrides.update(prev)
