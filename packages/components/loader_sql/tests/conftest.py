# packages/components/loader_sql/tests/conftest.py

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import NullPool

from sqlfan_core.config import ConnectionSettings
from sqlfan_core.connection import ConnectionManager


@pytest.fixture
def sqlite_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'loader.db'}"
    engine = create_engine(url, poolclass=NullPool)
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE items ("
                "id INTEGER PRIMARY KEY, name TEXT, price REAL, "
                "active BOOLEAN, payload BLOB, meta TEXT)"
            )
        )
    engine.dispose()
    return url


@pytest.fixture
def connections(sqlite_url):
    """Менеджер подключений к SQLite с таблицей items"""
    manager = ConnectionManager(ConnectionSettings(url=sqlite_url, show_timing=False))
    yield manager
    manager.close()


@pytest.fixture
def fetch_all(sqlite_url):
    """Чтение таблицы независимым подключением"""

    def fetch(sql: str = "SELECT * FROM items ORDER BY id"):
        engine = create_engine(sqlite_url, poolclass=NullPool)
        try:
            with engine.connect() as conn:
                return [tuple(row) for row in conn.execute(text(sql))]
        finally:
            engine.dispose()

    return fetch
