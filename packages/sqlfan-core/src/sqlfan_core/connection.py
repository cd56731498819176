"""
Менеджер подключений

ConnectionManager держит ровно одно живое подключение SQLAlchemy на логическую
базу данных и пересоздает его, когда запрошена другая база. Экземпляр
не потокобезопасен: одна копия на один контекст выполнения. Каждая удаленная
задача создает собственный менеджер из восстановленных настроек.
"""

from typing import Any, Callable

import structlog
from sqlalchemy import Connection, CursorResult, Engine, create_engine, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from sqlfan_core.config import ConnectionSettings
from sqlfan_core.exceptions import ConfigurationError, wrap_sqlalchemy_error

# Драйверы SQLAlchemy по префиксу диалекта
DRIVERS = {
    "mysql": "mysql+pymysql",
    "cloud-mysql": "mysql+pymysql",
    "postgres": "postgresql+psycopg2",
    "sqlserver": "mssql+pyodbc",
}

DEFAULT_PORTS = {
    "mysql": 3306,
    "postgres": 5432,
    "sqlserver": 1433,
}

SQLSERVER_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"


def build_url(settings: ConnectionSettings, database: str | None = None) -> URL:
    """
    Построение SQLAlchemy URL из настроек подключения

    Args:
        settings: Настройки подключения
        database: База данных (по умолчанию - из настроек)

    Returns:
        URL для create_engine
    """
    database = database or settings.database

    if settings.url:
        url = make_url(settings.url)
        if database and url.get_backend_name() != "sqlite":
            url = url.set(database=database)
        return url

    password = settings.password.get_secret_value() if settings.password else None
    query: dict[str, str] = {}

    if settings.dialect == "cloud-mysql":
        # Managed cloud: подключение через unix socket инстанса
        query["unix_socket"] = f"/cloudsql/{settings.instance_connection_name}"
        return URL.create(
            DRIVERS["cloud-mysql"],
            username=settings.user,
            password=password,
            database=database,
            query=query,
        )

    if settings.dialect == "sqlserver":
        query["driver"] = SQLSERVER_ODBC_DRIVER

    return URL.create(
        DRIVERS[settings.dialect],
        username=settings.user,
        password=password,
        host=settings.server,
        port=settings.port or DEFAULT_PORTS[settings.family],
        database=database,
        query=query,
    )


def execute_sql(
    connection: Connection, sql: str, parameters: dict[str, Any] | None = None
) -> CursorResult:
    """
    Выполнение SQL текста

    Без параметров текст уходит в драйвер как есть: ":name" внутри
    литералов не считается bind параметром, "%" не экранируется.
    С параметрами запрос выполняется через text() с именованными :name.
    """
    if parameters:
        return connection.execute(text(sql), parameters)
    return connection.exec_driver_sql(sql, execution_options={"no_parameters": True})


class ConnectionManager:
    """Владелец единственного живого подключения к текущей базе данных"""

    def __init__(
        self,
        settings: ConnectionSettings,
        engine_factory: Callable[..., Engine] = create_engine,
    ):
        self.settings = settings
        self._engine_factory = engine_factory
        self._engine: Engine | None = None
        self._connection: Connection | None = None
        self._bound_database: str | None = None

        self.logger = structlog.get_logger(
            component=self.__class__.__name__,
            dialect=settings.dialect,
        )

    @property
    def database(self) -> str | None:
        """Текущая привязанная база данных"""
        return self._bound_database

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and not self._connection.closed

    def connect(self, database: str | None = None) -> Connection:
        """
        Получение подключения к базе данных

        Кэшированное подключение переиспользуется, пока запрошенная база
        совпадает с привязанной. Иначе старое закрывается и создается новое.
        """
        target = database or self.settings.database

        if self.is_connected and target == self._bound_database:
            return self._connection

        self.close()

        url = build_url(self.settings, target)
        try:
            self._engine = self._engine_factory(
                url,
                poolclass=NullPool,
                connect_args=dict(self.settings.connect_args),
            )
            self._connection = self._engine.connect()
        except SQLAlchemyError as e:
            self._dispose_engine()
            raise wrap_sqlalchemy_error(e) from e
        except ImportError as e:
            # DBAPI драйвер диалекта не установлен
            self._dispose_engine()
            raise ConfigurationError(
                f"Database driver for {self.settings.dialect} is not installed: {e}",
                config_field="dialect",
                config_value=self.settings.dialect,
                original_error=e,
            ) from e

        self._bound_database = target
        self.logger.debug(
            "Database connection opened",
            database=target,
            backend=url.get_backend_name(),
        )
        return self._connection

    def close(self) -> None:
        """Закрытие подключения (идемпотентно)"""
        if self._connection is not None:
            try:
                self._connection.close()
            finally:
                self._connection = None
                self.logger.debug("Database connection closed", database=self._bound_database)

        self._dispose_engine()
        self._bound_database = None

    def _dispose_engine(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    def __enter__(self) -> "ConnectionManager":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(dialect='{self.settings.dialect}', "
            f"database='{self._bound_database}')"
        )
