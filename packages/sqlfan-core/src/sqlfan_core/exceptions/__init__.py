"""
Иерархия исключений sqlfan
"""

from sqlfan_core.exceptions.errors import (
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
    wrap_sqlalchemy_error,
)

__all__ = [
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
    "wrap_sqlalchemy_error",
]
