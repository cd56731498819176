# packages/components/query_sql/src/query_sql/__init__.py

"""
query_sql - построение и чтение SQL запросов для трех диалектов

Компоненты:
- QueryFilter: декларативная модель фильтра
- compile_select / build_insert: генерация SQL текста
- SelfHealingReader: чтение с удалением неизвестных колонок
"""

from query_sql.compiler import (
    DIALECTS,
    MySQLDialect,
    PostgresDialect,
    SQLDialect,
    SQLServerDialect,
    build_condition,
    build_insert,
    compile_select,
    get_dialect,
    to_epoch_seconds,
)
from query_sql.filters import QueryFilter, coerce_filters, parse_filter
from query_sql.reader import (
    SelfHealingReader,
    drop_column,
    empty_result,
    extract_unknown_column,
    split_projection,
)

__version__ = "0.1.0"

__all__ = [
    # Filters
    "QueryFilter",
    "coerce_filters",
    "parse_filter",
    # Compiler
    "SQLDialect",
    "MySQLDialect",
    "PostgresDialect",
    "SQLServerDialect",
    "DIALECTS",
    "get_dialect",
    "build_condition",
    "compile_select",
    "build_insert",
    "to_epoch_seconds",
    # Reader
    "SelfHealingReader",
    "drop_column",
    "empty_result",
    "extract_unknown_column",
    "split_projection",
]
