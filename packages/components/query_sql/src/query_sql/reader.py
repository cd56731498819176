# packages/components/query_sql/src/query_sql/reader.py

"""
Самовосстанавливающееся чтение

Если драйвер сообщает о неизвестной колонке, колонка удаляется из проекции
и запрос повторяется (не более 5 повторов). Исчерпание повторов и любые
другие ошибки дают пустой результат запрошенной формы вместо исключения.
"""

import re
from typing import Any, Literal

import structlog
from sqlalchemy import Connection
from sqlalchemy.exc import SQLAlchemyError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from sqlfan_core.connection import execute_sql
from sqlfan_core.observability.metrics import READER_DEGRADED_TOTAL, READER_RETRIES_TOTAL

Shape = Literal["array", "object"]

MAX_RETRIES = 5

# Сообщения драйверов о неизвестной колонке
UNKNOWN_COLUMN_PATTERNS = (
    re.compile(r"Unknown column '(?P<column>[^']+)'", re.IGNORECASE),  # MySQL
    re.compile(r'column "?(?P<column>[\w.]+)"? does not exist', re.IGNORECASE),  # Postgres
    re.compile(r"Invalid column name '(?P<column>[^']+)'", re.IGNORECASE),  # SQL Server
    re.compile(r"no such column: (?P<column>[\w.\"`\[\]]+)", re.IGNORECASE),  # SQLite
)

_SELECT_RE = re.compile(
    r"^\s*SELECT\s+(?P<distinct>DISTINCT\s+)?(?P<projection>.+?)\s+FROM\s+(?P<rest>.+)$",
    re.IGNORECASE | re.DOTALL,
)
_ALIAS_RE = re.compile(r"\s+AS\s+.+$", re.IGNORECASE | re.DOTALL)
_QUOTE_CHARS = "`\"[]"


class UnknownColumn(Exception):
    """Драйвер не нашел колонку; запрос уже переписан без нее"""

    def __init__(self, column: str, rewritten_sql: str):
        super().__init__(f"Unknown column {column}")
        self.column = column
        self.rewritten_sql = rewritten_sql


def empty_result(shape: Shape) -> Any:
    """Пустой результат запрошенной формы"""
    if shape == "array":
        return {"columns": [], "rows": []}
    return []


def extract_unknown_column(message: str) -> str | None:
    """Имя колонки из сообщения драйвера или None"""
    for pattern in UNKNOWN_COLUMN_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group("column")
    return None


def _normalize_name(name: str) -> str:
    """Имя колонки без кавычек и префикса таблицы, в нижнем регистре"""
    last = name.strip().split(".")[-1]
    return last.strip(_QUOTE_CHARS).lower()


def split_projection(projection: str) -> list[str]:
    """Разбиение проекции по запятым верхнего уровня"""
    items: list[str] = []
    depth = 0
    quote: str | None = None
    current: list[str] = []

    for char in projection:
        if quote:
            if char == quote:
                quote = None
        elif char in ("'", '"', "`"):
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            depth -= 1
        elif char == "," and depth == 0:
            items.append("".join(current).strip())
            current = []
            continue
        current.append(char)

    if current:
        items.append("".join(current).strip())
    return [item for item in items if item]


def drop_column(sql: str, column: str) -> str | None:
    """
    Удаление колонки из проекции SELECT

    Returns:
        Переписанный запрос или None, если колонки нет в проекции
    """
    match = _SELECT_RE.match(sql)
    if not match:
        return None

    target = _normalize_name(column)
    items = split_projection(match.group("projection"))
    remaining = [
        item for item in items if _normalize_name(_ALIAS_RE.sub("", item)) != target
    ]
    if len(remaining) == len(items):
        return None

    distinct = match.group("distinct") or ""
    projection = ", ".join(remaining) if remaining else "*"
    return f"SELECT {distinct}{projection} FROM {match.group('rest')}"


class SelfHealingReader:
    """Чтение с удалением устаревших колонок и повтором"""

    def __init__(self, max_retries: int = MAX_RETRIES):
        self.max_retries = max_retries
        self.logger = structlog.get_logger(component=self.__class__.__name__)

    def read(
        self,
        connection: Connection,
        sql: str,
        shape: Shape = "object",
        parameters: dict[str, Any] | None = None,
    ) -> Any:
        """
        Выполнение запроса с самовосстановлением

        Args:
            connection: Подключение SQLAlchemy
            sql: SQL текст
            shape: "array" - {"columns", "rows"}, "object" - список словарей
            parameters: Параметры запроса

        Returns:
            Результат запрошенной формы (пустой при ошибке)
        """
        state = {"sql": sql}

        def attempt() -> Any:
            try:
                return self._execute(connection, state["sql"], shape, parameters)
            except SQLAlchemyError as e:
                self._rollback(connection)
                message = str(getattr(e, "orig", None) or e)
                column = extract_unknown_column(message)
                if column is None:
                    raise

                rewritten = drop_column(state["sql"], column)
                if rewritten is None:
                    raise

                self.logger.warning(
                    "Unknown column dropped from projection",
                    column=column,
                    sql=rewritten,
                )
                READER_RETRIES_TOTAL.inc()
                state["sql"] = rewritten
                raise UnknownColumn(column, rewritten) from e

        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            retry=retry_if_exception_type(UnknownColumn),
            reraise=True,
        )

        try:
            return retrying(attempt)
        except UnknownColumn as e:
            self.logger.error(
                "Read retries exhausted, returning empty result",
                column=e.column,
                attempts=self.max_retries + 1,
            )
            READER_DEGRADED_TOTAL.labels(reason="retries_exhausted").inc()
        except SQLAlchemyError as e:
            self.logger.error("Read failed, returning empty result", error=str(e))
            READER_DEGRADED_TOTAL.labels(reason="driver_error").inc()

        return empty_result(shape)

    def _execute(
        self,
        connection: Connection,
        sql: str,
        shape: Shape,
        parameters: dict[str, Any] | None,
    ) -> Any:
        result = execute_sql(connection, sql, parameters)
        try:
            if not result.returns_rows:
                return empty_result(shape)

            columns = list(result.keys())
            rows = result.fetchall()
        finally:
            result.close()

        if shape == "array":
            return {"columns": columns, "rows": [list(row) for row in rows]}
        return [dict(zip(columns, row, strict=False)) for row in rows]

    def _rollback(self, connection: Connection) -> None:
        try:
            connection.rollback()
        except SQLAlchemyError as e:
            self.logger.warning("Rollback after failed read failed", error=str(e))
