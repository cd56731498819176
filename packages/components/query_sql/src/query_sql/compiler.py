# packages/components/query_sql/src/query_sql/compiler.py

"""
Компилятор фильтров в SQL текст

Поддерживаются три семейства синтаксиса:
- mysql (mysql, cloud-mysql): `backtick`, LIMIT n OFFSET m
- postgres: "double quote", LIMIT n OFFSET m
- sqlserver: [bracket], OFFSET m ROWS FETCH NEXT n ROWS ONLY

Порядок частей запроса всегда WHERE, ORDER BY, пагинация.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Sequence

from sqlfan_core.config import dialect_family
from sqlfan_core.exceptions import ConfigurationError, ValidationError

from query_sql.filters import QueryFilter, coerce_filters

# Максимальный LIMIT для MySQL, когда задан только OFFSET
MYSQL_MAX_LIMIT = 18446744073709551615


class SQLDialect:
    """Синтаксис конкретного семейства SQL"""

    name = "base"
    quote_open = '"'
    quote_close = '"'
    escape_backslash = False
    boolean_literals = ("TRUE", "FALSE")

    def quote_identifier(self, identifier: str) -> str:
        """Экранирование идентификатора; имена с точкой экранируются по частям"""
        if identifier == "*":
            return identifier
        parts = [part.strip() for part in identifier.split(".")]
        if any(not part for part in parts):
            raise ValidationError(
                f"Invalid identifier: {identifier!r}", field_name="identifier"
            )
        return ".".join(self._quote_part(part) for part in parts)

    def _quote_part(self, part: str) -> str:
        if part == "*":
            return part
        escaped = part.replace(self.quote_close, self.quote_close * 2)
        return f"{self.quote_open}{escaped}{self.quote_close}"

    def literal(self, value: Any) -> str:
        """Рендеринг значения как SQL литерала"""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return self.boolean_literals[0] if value else self.boolean_literals[1]
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        if isinstance(value, datetime):
            return self._quote_string(value.strftime("%Y-%m-%d %H:%M:%S"))
        if isinstance(value, (date, time)):
            return self._quote_string(value.isoformat())
        return self._quote_string(str(value))

    def _quote_string(self, text: str) -> str:
        if self.escape_backslash:
            text = text.replace("\\", "\\\\")
        return "'" + text.replace("'", "''") + "'"

    def regex_condition(self, column: str, pattern: str) -> str:
        raise NotImplementedError

    def pagination(
        self, limit: int | None, offset: int | None, has_order: bool
    ) -> tuple[str | None, str | None]:
        """
        Пагинация для запроса

        Returns:
            (дополнительный ORDER BY или None, клауза пагинации или None)
        """
        if limit is not None:
            return None, f"LIMIT {limit} OFFSET {offset or 0}"
        if offset is not None:
            return None, f"OFFSET {offset}"
        return None, None


class MySQLDialect(SQLDialect):
    name = "mysql"
    quote_open = "`"
    quote_close = "`"
    escape_backslash = True

    def regex_condition(self, column: str, pattern: str) -> str:
        return f"{column} REGEXP {self.literal(pattern)}"

    def pagination(self, limit, offset, has_order):
        if limit is None and offset is not None:
            return None, f"LIMIT {MYSQL_MAX_LIMIT} OFFSET {offset}"
        return super().pagination(limit, offset, has_order)


class PostgresDialect(SQLDialect):
    name = "postgres"

    def regex_condition(self, column: str, pattern: str) -> str:
        return f"{column} ~ {self.literal(pattern)}"


class SQLServerDialect(SQLDialect):
    name = "sqlserver"
    quote_open = "["
    quote_close = "]"
    boolean_literals = ("1", "0")

    def regex_condition(self, column: str, pattern: str) -> str:
        return f"REGEXP_LIKE({column}, {self.literal(pattern)})"

    def pagination(self, limit, offset, has_order):
        if limit is None and offset is None:
            return None, None

        # OFFSET ... FETCH требует ORDER BY
        order = None if has_order else "ORDER BY (SELECT NULL)"
        clause = f"OFFSET {offset or 0} ROWS"
        if limit is not None:
            clause += f" FETCH NEXT {limit} ROWS ONLY"
        return order, clause


DIALECTS: dict[str, SQLDialect] = {
    "mysql": MySQLDialect(),
    "postgres": PostgresDialect(),
    "sqlserver": SQLServerDialect(),
}


def get_dialect(dialect: str | SQLDialect) -> SQLDialect:
    """Синтаксис по префиксу диалекта (mysql, cloud-mysql, postgres, sqlserver)"""
    if isinstance(dialect, SQLDialect):
        return dialect
    return DIALECTS[dialect_family(dialect)]


def to_epoch_seconds(value: Any) -> Any:
    """Перевод даты в epoch seconds; наивные значения считаются UTC"""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp())
    return value


def build_condition(dialect: SQLDialect, query_filter: QueryFilter) -> str | None:
    """
    Условие WHERE для одного фильтра

    Приоритет: точное совпадение, LIKE, NOT LIKE, regex, диапазон
    (BETWEEN, затем только >, затем только <).
    """
    if not query_filter.has_condition:
        return None

    column = dialect.quote_identifier(query_filter.column)
    convert = to_epoch_seconds if query_filter.to_unix_time else (lambda v: v)

    if query_filter.value is not None:
        return f"{column} = {dialect.literal(convert(query_filter.value))}"
    if query_filter.like is not None:
        return f"{column} LIKE {dialect.literal(query_filter.like)}"
    if query_filter.notlike is not None:
        return f"{column} NOT LIKE {dialect.literal(query_filter.notlike)}"
    if query_filter.regex is not None:
        return dialect.regex_condition(column, query_filter.regex)

    lower, upper = query_filter.value_from, query_filter.value_to
    if lower is not None and upper is not None:
        return (
            f"{column} BETWEEN {dialect.literal(convert(lower))} "
            f"AND {dialect.literal(convert(upper))}"
        )
    if lower is not None:
        return f"{column} > {dialect.literal(convert(lower))}"
    return f"{column} < {dialect.literal(convert(upper))}"


def _first(filters: Sequence[QueryFilter], attribute: str) -> Any:
    """Первое заданное значение атрибута в списке фильтров"""
    for query_filter in filters:
        value = getattr(query_filter, attribute)
        if value is not None:
            return value
    return None


def _projection(dialect: SQLDialect, columns: Sequence[str] | None) -> str:
    if not columns:
        return "*"
    return ", ".join(dialect.quote_identifier(column) for column in columns)


def compile_select(
    dialect: str | SQLDialect,
    table: str,
    columns: Sequence[str] | str | None = None,
    filters: Any = None,
    count_only: bool = False,
) -> str:
    """
    Построение SELECT запроса

    Args:
        dialect: Префикс диалекта или объект SQLDialect
        table: Имя таблицы (допускается schema.table)
        columns: Колонки проекции; пусто - все колонки
        filters: Фильтр или список фильтров (объединяются через AND)
        count_only: Вернуть COUNT(*) без сортировки и пагинации

    Returns:
        SQL текст
    """
    sql_dialect = get_dialect(dialect)
    if not table:
        raise ValidationError("Table name is required", field_name="table")
    if isinstance(columns, str):
        columns = [column.strip() for column in columns.split(",") if column.strip()]

    filter_list = coerce_filters(filters)
    projection = "COUNT(*)" if count_only else _projection(sql_dialect, columns)

    parts = [f"SELECT {projection} FROM {sql_dialect.quote_identifier(table)}"]

    conditions = [
        condition
        for condition in (build_condition(sql_dialect, f) for f in filter_list)
        if condition is not None
    ]
    if conditions:
        parts.append("WHERE " + " AND ".join(conditions))

    if count_only:
        return " ".join(parts)

    sort = _first(filter_list, "sort")
    if sort:
        direction = (_first(filter_list, "direction") or "asc").upper()
        parts.append(f"ORDER BY {sql_dialect.quote_identifier(sort)} {direction}")

    order, pagination = sql_dialect.pagination(
        _first(filter_list, "limit"), _first(filter_list, "offset"), has_order=bool(sort)
    )
    if order:
        parts.append(order)
    if pagination:
        parts.append(pagination)

    return " ".join(parts)


def build_insert(
    dialect: str | SQLDialect,
    table: str,
    columns: Sequence[str],
    upsert: bool = False,
) -> str:
    """
    Параметризованный INSERT с именованными параметрами :p0..:pN

    Upsert (ON DUPLICATE KEY UPDATE) поддерживается только семейством mysql.
    """
    sql_dialect = get_dialect(dialect)
    if not table:
        raise ValidationError("Table name is required", field_name="table")
    if not columns:
        raise ValidationError("Column list is required", field_name="columns")

    quoted = [sql_dialect.quote_identifier(column) for column in columns]
    placeholders = ", ".join(f":p{index}" for index in range(len(columns)))
    sql = (
        f"INSERT INTO {sql_dialect.quote_identifier(table)} "
        f"({', '.join(quoted)}) VALUES ({placeholders})"
    )

    if upsert:
        if sql_dialect.name != "mysql":
            raise ConfigurationError(
                f"Upsert is not supported for dialect {sql_dialect.name}",
                config_field="upsert",
                config_value=True,
            )
        updates = ", ".join(f"{column}=VALUES({column})" for column in quoted)
        sql += f" ON DUPLICATE KEY UPDATE {updates}"

    return sql
