# packages/components/query_sql/tests/conftest.py

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import NullPool


@pytest.fixture
def sqlite_engine(tmp_path):
    """SQLite файл с таблицей users"""
    engine = create_engine(f"sqlite:///{tmp_path / 'query.db'}", poolclass=NullPool)
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, email TEXT)"))
        conn.execute(
            text("INSERT INTO users (id, name, email) VALUES (:id, :name, :email)"),
            [
                {"id": 1, "name": "Alice", "email": "alice@example.com"},
                {"id": 2, "name": "Bob", "email": "bob@example.com"},
            ],
        )

    yield engine
    engine.dispose()


@pytest.fixture
def sqlite_connection(sqlite_engine):
    """Подключение к тестовой SQLite базе"""
    connection = sqlite_engine.connect()
    yield connection
    connection.close()


class FakeDriverError(Exception):
    """Исходная ошибка драйвера для DBAPIError"""


@pytest.fixture
def fake_driver_error():
    return FakeDriverError
