# packages/dispatch/src/sqlfan_dispatch/database.py

"""
Database - фасад над SQL слоем

Методы фасада соответствуют операциям allow-list. Каждый метод логирует
время выполнения (show_timing), текст SQL (show_logs) и при
mute_exceptions понижает ошибки до предупреждения с результатом None.
"""

import functools
import time
from typing import Any, Callable, Literal, Sequence, TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError

from loader_sql import BulkLoader, LoadOptions, records_to_rows
from query_sql import SelfHealingReader, compile_select
from sqlfan_core.config import ConnectionSettings
from sqlfan_core.connection import ConnectionManager, execute_sql
from sqlfan_core.exceptions import SqlFanError, ValidationError, wrap_sqlalchemy_error

F = TypeVar("F", bound=Callable[..., Any])

Shape = Literal["array", "object"]


def operation(name: str) -> Callable[[F], F]:
    """Декоратор операции: тайминг, логирование и mute_exceptions"""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: "Database", *args: Any, **kwargs: Any) -> Any:
            start_time = time.time()
            try:
                return func(self, *args, **kwargs)
            except Exception as e:
                if not self.settings.mute_exceptions:
                    raise
                if isinstance(e, SqlFanError):
                    error = e
                else:
                    error = SqlFanError(
                        f"Unexpected {type(e).__name__} in {name}",
                        error_code="UNEXPECTED_ERROR",
                        original_error=e,
                    )
                self.logger.warning(
                    "Operation failed, exception muted",
                    operation=name,
                    error=str(error),
                    error_code=error.error_code,
                )
                return None
            finally:
                if self.settings.show_timing:
                    self.logger.info(
                        "Operation finished",
                        operation=name,
                        duration_ms=round((time.time() - start_time) * 1000, 3),
                    )

        return wrapper  # type: ignore[return-value]

    return decorator


class Database:
    """Операции над базой данных в рамках одного контекста подключения"""

    def __init__(self, settings: ConnectionSettings, connections: ConnectionManager | None = None):
        self.settings = settings
        self.connections = connections or ConnectionManager(settings)
        self.reader = SelfHealingReader()
        self.logger = structlog.get_logger(
            component=self.__class__.__name__, dialect=settings.dialect
        )

    def close(self) -> None:
        self.connections.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _log_sql(self, sql: str, **extra: Any) -> None:
        if self.settings.show_logs:
            self.logger.info("Executing SQL", sql=sql, **extra)

    @staticmethod
    def _require_sql(sql: Any) -> str:
        if not isinstance(sql, str) or not sql.strip():
            raise ValidationError("SQL text is required", field_name="sql")
        return sql

    # Произвольный SQL

    @operation("execute")
    def execute(self, sql: str, database: str | None = None) -> bool:
        """Выполнение произвольного SQL; True, если запрос вернул строки"""
        sql = self._require_sql(sql)
        self._log_sql(sql, database=database)
        connection = self.connections.connect(database)
        try:
            result = execute_sql(connection, sql)
            try:
                returns_rows = result.returns_rows
            finally:
                result.close()
            connection.commit()
        except SQLAlchemyError as e:
            connection.rollback()
            raise wrap_sqlalchemy_error(e, sql) from e
        return returns_rows

    @operation("executeQuery")
    def execute_query(self, sql: str, database: str | None = None) -> list[dict[str, Any]]:
        """Запрос с результатом в виде списка словарей"""
        sql = self._require_sql(sql)
        self._log_sql(sql, database=database)
        return self.reader.read(self.connections.connect(database), sql, shape="object")

    @operation("executeUpdate")
    def execute_update(self, sql: str, database: str | None = None) -> int:
        """Изменяющий запрос; возвращает число затронутых строк"""
        sql = self._require_sql(sql)
        self._log_sql(sql, database=database)
        connection = self.connections.connect(database)
        try:
            result = execute_sql(connection, sql)
            try:
                rowcount = result.rowcount
            finally:
                result.close()
            connection.commit()
        except SQLAlchemyError as e:
            connection.rollback()
            raise wrap_sqlalchemy_error(e, sql) from e
        return rowcount

    @operation("queryDatabase")
    def query_database(self, sql: str, database: str | None = None) -> dict[str, list]:
        """Запрос с результатом {"columns": [...], "rows": [[...]]}"""
        sql = self._require_sql(sql)
        self._log_sql(sql, database=database)
        return self.reader.read(self.connections.connect(database), sql, shape="array")

    # Чтение таблиц

    @operation("retrieveDataFromDB")
    def retrieve_data_from_db(
        self,
        table: str,
        columns: Sequence[str] | str | None = None,
        filters: Any = None,
        database: str | None = None,
        shape: Shape = "object",
        count_only: bool = False,
    ) -> Any:
        """
        Чтение таблицы по декларативным фильтрам

        Args:
            table: Имя таблицы
            columns: Колонки (пусто - все)
            filters: Фильтр или список фильтров
            database: База данных (по умолчанию - из настроек)
            shape: Форма результата: "object" или "array"
            count_only: Вернуть количество строк

        Returns:
            Строки в запрошенной форме или число при count_only
        """
        return self._retrieve(table, columns, filters, database, shape, count_only)

    def _retrieve(
        self,
        table: str,
        columns: Sequence[str] | str | None,
        filters: Any,
        database: str | None,
        shape: Shape,
        count_only: bool = False,
    ) -> Any:
        if shape not in ("array", "object"):
            raise ValidationError(
                f"Unknown result shape: {shape}", field_name="shape", field_value=shape
            )

        sql = compile_select(
            self.settings.dialect, table, columns=columns, filters=filters, count_only=count_only
        )
        self._log_sql(sql, database=database)
        connection = self.connections.connect(database)

        if count_only:
            result = self.reader.read(connection, sql, shape="array")
            rows = result["rows"]
            return int(rows[0][0]) if rows else 0

        return self.reader.read(connection, sql, shape=shape)

    @operation("getTableAsObject")
    def get_table_as_object(
        self,
        table: str,
        columns: Sequence[str] | str | None = None,
        filters: Any = None,
        database: str | None = None,
    ) -> list[dict[str, Any]]:
        return self._retrieve(table, columns, filters, database, "object")

    @operation("getTableAsArray")
    def get_table_as_array(
        self,
        table: str,
        columns: Sequence[str] | str | None = None,
        filters: Any = None,
        database: str | None = None,
    ) -> dict[str, list]:
        return self._retrieve(table, columns, filters, database, "array")

    # Запись

    @operation("insertInto")
    def insert_into(
        self,
        table: str,
        records: Any,
        options: LoadOptions | dict[str, Any] | None = None,
    ) -> bool:
        """Вставка записей; колонки - объединение ключей в порядке появления"""
        columns, rows = records_to_rows(records)
        if not rows:
            return True
        return BulkLoader(self.connections).load(table, columns, rows, options)

    @operation("insertArrayToDBTable")
    def insert_array_to_db_table(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        options: LoadOptions | dict[str, Any] | None = None,
    ) -> bool:
        """Вставка строк, выровненных по списку колонок"""
        if not isinstance(rows, (list, tuple)):
            raise ValidationError("Rows must be a list", field_name="rows")
        return BulkLoader(self.connections).load(table, columns, rows, options)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(dialect='{self.settings.dialect}')"
