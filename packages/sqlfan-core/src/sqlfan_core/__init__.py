# packages/sqlfan-core/src/sqlfan_core/__init__.py

"""
sqlfan core - общий фундамент для SQL слоя и удаленного fan-out

Основные компоненты:
- ConnectionSettings и SettingsStore на основе Pydantic
- Иерархия исключений с кодами ошибок
- Классификатор типов значений и wire формат TypedValue
- ConnectionManager поверх SQLAlchemy
- Observability: структурированные логи и метрики
"""

__version__ = "0.1.0"

from sqlfan_core.config import (
    SUPPORTED_DIALECTS,
    ConnectionSettings,
    RemoteSettings,
    SettingsStore,
    dialect_family,
    load_settings,
)
from sqlfan_core.connection import ConnectionManager, build_url, execute_sql
from sqlfan_core.exceptions import (
    AuthenticationError,
    BulkLoadError,
    ConfigurationError,
    PolicyError,
    QueryExecutionError,
    RemoteOperationError,
    RemoteTransportError,
    SqlFanError,
    UnsupportedDialectError,
    ValidationError,
)
from sqlfan_core.observability import LoggerConfig, setup_logging
from sqlfan_core.values import TypedValue, ValueKind, classify, enrich_records, enrich_rows

__all__ = [
    "__version__",
    # Config
    "ConnectionSettings",
    "RemoteSettings",
    "SettingsStore",
    "SUPPORTED_DIALECTS",
    "dialect_family",
    "load_settings",
    # Connection
    "ConnectionManager",
    "build_url",
    "execute_sql",
    # Errors
    "SqlFanError",
    "ConfigurationError",
    "UnsupportedDialectError",
    "ValidationError",
    "QueryExecutionError",
    "BulkLoadError",
    "RemoteTransportError",
    "RemoteOperationError",
    "PolicyError",
    "AuthenticationError",
    # Values
    "ValueKind",
    "TypedValue",
    "classify",
    "enrich_rows",
    "enrich_records",
    # Observability
    "LoggerConfig",
    "setup_logging",
]
