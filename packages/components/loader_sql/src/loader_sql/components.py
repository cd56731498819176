# packages/components/loader_sql/src/loader_sql/components.py

"""
Пакетная загрузка строк в SQL таблицы

BulkLoader строит один параметризованный INSERT (с ON DUPLICATE KEY UPDATE
при upsert), привязывает каждую ячейку по ее семантическому типу и отправляет
строки пачками через executemany. Операция атомарна: любая ошибка без
auto_commit откатывает всю транзакцию.
"""

import time
from typing import Any, Sequence

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
)
from pydantic.alias_generators import to_camel
from sqlalchemy import Connection, text
from sqlalchemy.exc import SQLAlchemyError

from query_sql.compiler import build_insert
from sqlfan_core.connection import ConnectionManager
from sqlfan_core.exceptions import BulkLoadError, SqlFanError, ValidationError
from sqlfan_core.observability.metrics import ROWS_LOADED_TOTAL
from sqlfan_core.values import ValueKind

from loader_sql.binders import ValueBinder


class LoadOptions(BaseModel):
    """Параметры пакетной загрузки"""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    database: str | None = Field(default=None, description="Целевая база данных")
    auto_commit: bool = Field(
        default=False, description="Фиксировать каждую пачку отдельно"
    )
    batch_size: int = Field(default=100, ge=1, description="Размер пачки")
    upsert: bool = Field(default=False, description="ON DUPLICATE KEY UPDATE")
    detect_types: bool = Field(default=True, description="Привязка по типу значения")
    string_kinds: list[ValueKind] = Field(
        default_factory=list, description="Типы, приводимые к строке"
    )

    @classmethod
    def coerce(cls, options: Any) -> "LoadOptions":
        """LoadOptions из None, словаря или готового объекта"""
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if not isinstance(options, dict):
            raise ValidationError(
                f"Load options must be an object, got {type(options).__name__}",
                field_name="options",
            )
        try:
            return cls.model_validate(options)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid load options: {e.errors(include_url=False)}",
                field_name="options",
                original_error=e,
            ) from e


class _Cursor:
    """Позиция последней обработанной ячейки для диагностики"""

    def __init__(self) -> None:
        self.row_index: int | None = None
        self.column_index: int | None = None
        self.value: Any = None
        self.kind: ValueKind | None = None


class BulkLoader:
    """Загрузчик строк в таблицу через ConnectionManager"""

    def __init__(self, connections: ConnectionManager):
        self.connections = connections
        self.dialect = connections.settings.dialect
        self.logger = structlog.get_logger(
            component=self.__class__.__name__, dialect=self.dialect
        )

    def load(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        options: LoadOptions | dict[str, Any] | None = None,
    ) -> bool:
        """
        Вставка строк в таблицу

        Args:
            table: Имя таблицы
            columns: Список колонок
            rows: Строки, выровненные по списку колонок
            options: Параметры загрузки

        Returns:
            True при успешной загрузке всех строк

        Raises:
            ValidationError: Нет таблицы или колонок
            BulkLoadError: Ошибка привязки или выполнения с позицией ячейки
        """
        options = LoadOptions.coerce(options)
        if not table:
            raise ValidationError("Table name is required", field_name="table")
        if not columns:
            raise ValidationError("Column list is required", field_name="columns")

        columns = list(columns)
        sql = build_insert(self.dialect, table, columns, upsert=options.upsert)
        binder = ValueBinder(options.detect_types, options.string_kinds)
        cursor = _Cursor()
        start_time = time.time()

        try:
            connection = self.connections.connect(options.database)
            try:
                self._insert(connection, sql, columns, rows, binder, options, cursor)
            except (SqlFanError, SQLAlchemyError, TypeError, ValueError, OverflowError) as e:
                if not options.auto_commit:
                    self._rollback(connection)
                raise self._enrich(e, sql, cursor) from e
        finally:
            self.connections.close()

        ROWS_LOADED_TOTAL.labels(dialect=self.dialect).inc(len(rows))
        self.logger.info(
            "Bulk load completed",
            table=table,
            rows=len(rows),
            batch_size=options.batch_size,
            duration_seconds=time.time() - start_time,
        )
        return True

    def _insert(
        self,
        connection: Connection,
        sql: str,
        columns: list[str],
        rows: Sequence[Sequence[Any]],
        binder: ValueBinder,
        options: LoadOptions,
        cursor: _Cursor,
    ) -> None:
        statement = text(sql)
        batch: list[dict[str, Any]] = []

        for row_index, row in enumerate(rows):
            cursor.row_index = row_index
            if len(row) != len(columns):
                cursor.column_index = min(len(row), len(columns))
                cursor.value, cursor.kind = None, None
                raise ValidationError(
                    f"Row {row_index} has {len(row)} values, expected {len(columns)}",
                    field_name="rows",
                )

            params: dict[str, Any] = {}
            for column_index, cell in enumerate(row):
                cursor.column_index = column_index
                cursor.value = cell
                typed = binder.classify(cell)
                cursor.value, cursor.kind = typed.value, typed.kind
                params[f"p{column_index}"] = binder.bind(typed)
            batch.append(params)

            if len(batch) >= options.batch_size:
                self._flush(connection, statement, batch, options, row_index)
                batch = []

        if batch:
            self._flush(connection, statement, batch, options, len(rows) - 1)

        # Финальная фиксация
        connection.commit()

    def _flush(
        self,
        connection: Connection,
        statement: Any,
        batch: list[dict[str, Any]],
        options: LoadOptions,
        last_row_index: int,
    ) -> None:
        connection.execute(statement, batch)
        if options.auto_commit:
            connection.commit()
        self.logger.debug(
            "Batch flushed",
            rows=len(batch),
            last_row_index=last_row_index,
            committed=options.auto_commit,
        )

    def _rollback(self, connection: Connection) -> None:
        try:
            connection.rollback()
            self.logger.warning("Bulk load rolled back")
        except SQLAlchemyError as e:
            self.logger.error("Rollback failed", error=str(e))

    def _enrich(self, error: Exception, sql: str, cursor: _Cursor) -> BulkLoadError:
        kind = cursor.kind.value if cursor.kind is not None else None
        self.logger.error(
            "Bulk load failed",
            error=str(error),
            row_index=cursor.row_index,
            column_index=cursor.column_index,
            kind=kind,
        )
        return BulkLoadError(
            f"Bulk load failed at row {cursor.row_index}, column {cursor.column_index}: {error}",
            column_index=cursor.column_index,
            row_index=cursor.row_index,
            value=cursor.value,
            kind=kind,
            query=sql,
            original_error=error,
        )


def insert_rows(
    connections: ConnectionManager,
    table: str,
    columns: Sequence[str],
    rows: Sequence[Sequence[Any]],
    options: LoadOptions | dict[str, Any] | None = None,
) -> bool:
    """Фабричная функция: разовая загрузка строк"""
    return BulkLoader(connections).load(table, columns, rows, options)


def records_to_rows(
    records: Any,
) -> tuple[list[str], list[list[Any]]]:
    """
    Записи (словари колонка -> значение) в колонки и строки

    Колонки - упорядоченное объединение ключей всех записей,
    отсутствующие значения становятся NULL.
    """
    if isinstance(records, dict):
        records = [records]
    if not isinstance(records, (list, tuple)) or not all(
        isinstance(record, dict) for record in records
    ):
        raise ValidationError(
            "Records must be an object or a list of objects", field_name="records"
        )

    columns: list[str] = []
    for record in records:
        for column in record:
            if column not in columns:
                columns.append(column)

    rows = [[record.get(column) for column in columns] for record in records]
    return columns, rows


__all__ = [
    "BulkLoader",
    "LoadOptions",
    "insert_rows",
    "records_to_rows",
]
