# packages/sqlfan-core/src/sqlfan_core/config/__init__.py

"""
Configuration package для sqlfan

Включает:
- ConnectionSettings: контекст подключения (pydantic)
- SettingsStore: хранилище URL endpoint, пароля и kill-switch
- Загрузку настроек из YAML/JSON
"""

from sqlfan_core.config.loader import load_config_file, load_settings
from sqlfan_core.config.settings import (
    SUPPORTED_DIALECTS,
    ConnectionSettings,
    DialectFamily,
    dialect_family,
)
from sqlfan_core.config.store import RemoteSettings, SettingsStore

__all__ = [
    "ConnectionSettings",
    "DialectFamily",
    "SUPPORTED_DIALECTS",
    "dialect_family",
    "RemoteSettings",
    "SettingsStore",
    "load_config_file",
    "load_settings",
]
