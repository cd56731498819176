# packages/dispatch/tests/conftest.py

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.pool import NullPool

from sqlfan_core.config import ConnectionSettings, SettingsStore
from sqlfan_dispatch import Database, create_app


@pytest.fixture
def sqlite_url(tmp_path):
    """SQLite файл с таблицей users"""
    url = f"sqlite:///{tmp_path / 'dispatch.db'}"
    engine = create_engine(url, poolclass=NullPool)
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, age INTEGER)"))
        conn.execute(
            text("INSERT INTO users (id, name, age) VALUES (:id, :name, :age)"),
            [
                {"id": 1, "name": "Alice", "age": 31},
                {"id": 2, "name": "Bob", "age": 25},
                {"id": 3, "name": "Carol", "age": 47},
            ],
        )
    engine.dispose()
    return url


@pytest.fixture
def settings(sqlite_url):
    return ConnectionSettings(url=sqlite_url, show_timing=False)


@pytest.fixture
def database(settings):
    db = Database(settings)
    yield db
    db.close()


@pytest.fixture
def store(tmp_path):
    return SettingsStore(tmp_path / "settings.json")


@pytest.fixture
def app(store):
    return create_app(store=store, allow_url_override=True)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
