# packages/sqlfan-core/src/sqlfan_core/exceptions/errors.py

"""
Исключения для sqlfan

Иерархия исключений:
- SqlFanError (базовое)
  - ConfigurationError (неподдерживаемый диалект, отсутствующие поля)
  - ValidationError (неверные аргументы операции, фильтры, размерность строк)
  - QueryExecutionError (ошибки драйвера при выполнении запросов)
    - BulkLoadError (ошибка пакетной вставки с позицией ячейки)
  - RemoteTransportError (сбой HTTP транспорта, фатален для всего fan-out)
  - RemoteOperationError (ошибка, возвращенная удаленной операцией)
  - PolicyError (kill-switch, операция вне allow-list)
  - AuthenticationError (неверный пароль хранилища настроек)
"""

from typing import Any


class SqlFanError(Exception):
    """Базовое исключение для sqlfan"""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        error_parts = [self.message]

        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            error_parts.append(f"Details: {details_str}")

        if self.original_error:
            error_parts.append(f"Caused by: {self.original_error}")

        return " | ".join(error_parts)

    def to_dict(self) -> dict[str, Any]:
        """Конвертация исключения в словарь для логирования/сериализации"""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "original_error": str(self.original_error) if self.original_error else None,
        }


class ConfigurationError(SqlFanError):
    """Ошибки конфигурации (фатальные, без повторов)"""

    def __init__(
        self,
        message: str,
        config_field: str | None = None,
        config_value: Any | None = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_field:
            details["config_field"] = config_field
        if config_value is not None:
            details["config_value"] = config_value

        kwargs.setdefault("error_code", "CONFIG_ERROR")
        super().__init__(message=message, details=details, **kwargs)
        self.config_field = config_field
        self.config_value = config_value


class UnsupportedDialectError(ConfigurationError):
    """Исключение для неподдерживаемых диалектов БД"""

    def __init__(self, dialect: str, supported_dialects: list | None = None, **kwargs):
        details = kwargs.pop("details", {})
        if supported_dialects:
            details["supported_dialects"] = supported_dialects

        super().__init__(
            message=f"Unsupported dialect prefix: {dialect}",
            config_field="dialect",
            config_value=dialect,
            error_code="UNSUPPORTED_DIALECT",
            details=details,
            **kwargs,
        )


class ValidationError(SqlFanError):
    """Ошибки валидации аргументов операции"""

    def __init__(
        self,
        message: str,
        field_name: str | None = None,
        field_value: Any | None = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field_name:
            details["field_name"] = field_name
        if field_value is not None:
            details["field_value"] = field_value

        kwargs.setdefault("error_code", "VALIDATION_ERROR")
        super().__init__(message=message, details=details, **kwargs)
        self.field_name = field_name
        self.field_value = field_value


class QueryExecutionError(SqlFanError):
    """Ошибки выполнения SQL запросов"""

    def __init__(self, message: str, query: str | None = None, **kwargs):
        details = kwargs.pop("details", {})
        if query:
            # Обрезаем длинные запросы для логирования
            details["query"] = query[:500] + "..." if len(query) > 500 else query

        kwargs.setdefault("error_code", "QUERY_ERROR")
        super().__init__(message=message, details=details, **kwargs)
        self.query = query


class BulkLoadError(QueryExecutionError):
    """
    Ошибка пакетной вставки с позицией последней обработанной ячейки

    Ошибка привязки значения указывает на саму ячейку. Если база отклонила
    пакет целиком (ограничение, тип колонки), row_index и column_index
    указывают на последнюю ячейку пакета, а не на строку, вызвавшую
    ошибку; для точной позиции используйте batch_size=1.
    """

    def __init__(
        self,
        message: str,
        column_index: int | None = None,
        row_index: int | None = None,
        value: Any | None = None,
        kind: str | None = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["column_index"] = column_index
        details["row_index"] = row_index
        details["value"] = repr(value)[:200]
        details["kind"] = kind

        super().__init__(
            message=message, error_code="BULK_LOAD_ERROR", details=details, **kwargs
        )
        self.column_index = column_index
        self.row_index = row_index
        self.value = value
        self.kind = kind


class RemoteTransportError(SqlFanError):
    """Сбой HTTP транспорта при обращении к удаленному endpoint"""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if endpoint:
            details["endpoint"] = endpoint
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(
            message=message, error_code="TRANSPORT_ERROR", details=details, **kwargs
        )
        self.endpoint = endpoint
        self.status_code = status_code


class RemoteOperationError(SqlFanError):
    """Ошибка, которую вернула удаленная операция"""

    def __init__(self, message: str, operation: str | None = None, tag: Any = None, **kwargs):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if tag is not None:
            details["tag"] = tag

        super().__init__(
            message=message, error_code="REMOTE_ERROR", details=details, **kwargs
        )
        self.operation = operation
        self.tag = tag


class PolicyError(SqlFanError):
    """Отказ по политике: kill-switch или операция вне allow-list"""

    def __init__(self, message: str, operation: str | None = None, **kwargs):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message, error_code="POLICY_ERROR", details=details, **kwargs
        )
        self.operation = operation


class AuthenticationError(SqlFanError):
    """Неверный пароль при изменении настроек"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, error_code="AUTH_ERROR", **kwargs)


def wrap_sqlalchemy_error(
    error: Exception, query: str | None = None
) -> SqlFanError:
    """
    Обертка исключений SQLAlchemy в исключения sqlfan

    Args:
        error: Исходное исключение
        query: SQL запрос, при выполнении которого произошла ошибка

    Returns:
        Соответствующее исключение sqlfan
    """
    from sqlalchemy.exc import ArgumentError, InvalidRequestError, NoSuchModuleError

    if isinstance(error, SqlFanError):
        return error

    if isinstance(error, (ArgumentError, NoSuchModuleError)):
        return ConfigurationError(
            message=f"Invalid connection configuration: {error}",
            original_error=error,
        )

    if isinstance(error, InvalidRequestError):
        return ValidationError(
            message=f"Invalid SQLAlchemy request: {error}",
            original_error=error,
        )

    return QueryExecutionError(
        message=f"Query execution failed: {error}",
        query=query,
        original_error=error,
    )
