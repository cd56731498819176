# packages/sqlfan-core/tests/conftest.py

import warnings

import pytest

from sqlfan_core.config import ConnectionSettings, SettingsStore

warnings.filterwarnings("ignore", category=DeprecationWarning)


@pytest.fixture
def sqlite_url(tmp_path):
    """URL SQLite файла во временной директории"""
    return f"sqlite:///{tmp_path / 'core.db'}"


@pytest.fixture
def sqlite_settings(sqlite_url):
    """Настройки подключения к SQLite через url override"""
    return ConnectionSettings(url=sqlite_url, show_timing=False)


@pytest.fixture
def mysql_settings():
    """Настройки MySQL без реального сервера"""
    return ConnectionSettings(
        server="db.internal",
        database="app",
        dialect="mysql",
        user="svc",
        password="s3cret",
    )


@pytest.fixture
def settings_store(tmp_path):
    """Хранилище настроек во временной директории"""
    return SettingsStore(tmp_path / "settings.json")


def pytest_configure(config):
    """Конфигурация pytest"""
    config.addinivalue_line(
        "markers", "integration: tests that run against a real SQLite database file"
    )
