# packages/dispatch/src/sqlfan_dispatch/operations.py

"""
Закрытый набор операций, которые могут пересекать удаленную границу

Allow-list - неизменяемое значение, которое строится один раз и передается
по ссылке в FanOutEngine, RemoteInvoker и Dispatcher. Диспетчеризация идет
только через DISPATCH_TABLE, без getattr по имени из запроса.
"""

from enum import Enum
from typing import Any, Callable, Iterable

from pydantic import BaseModel

from sqlfan_core.values import enrich_records, enrich_rows

from sqlfan_dispatch.database import Database


class Operation(str, Enum):
    """Операции, доступные удаленно (wire имена)"""

    EXECUTE = "execute"
    EXECUTE_QUERY = "executeQuery"
    EXECUTE_UPDATE = "executeUpdate"
    QUERY_DATABASE = "queryDatabase"
    INSERT_INTO = "insertInto"
    RETRIEVE_DATA_FROM_DB = "retrieveDataFromDB"
    GET_TABLE_AS_OBJECT = "getTableAsObject"
    GET_TABLE_AS_ARRAY = "getTableAsArray"
    INSERT_ARRAY_TO_DB_TABLE = "insertArrayToDBTable"

    @classmethod
    def lookup(cls, name: Any) -> "Operation | None":
        """Операция по wire имени или None"""
        if isinstance(name, cls):
            return name
        try:
            return cls(name)
        except ValueError:
            return None


AllowList = frozenset[Operation]

DEFAULT_ALLOW_LIST: AllowList = frozenset(Operation)


def build_allow_list(names: Iterable[str | Operation] | None = None) -> AllowList:
    """
    Построение allow-list

    Args:
        names: Wire имена операций; None - все операции

    Raises:
        ValueError: Имя не входит в набор операций
    """
    if names is None:
        return DEFAULT_ALLOW_LIST

    operations = []
    for name in names:
        operation = Operation.lookup(name)
        if operation is None:
            raise ValueError(f"Unknown operation: {name}")
        operations.append(operation)
    return frozenset(operations)


def resolve(name: Any, allow_list: AllowList = DEFAULT_ALLOW_LIST) -> Operation | None:
    """Операция, если имя известно и разрешено"""
    operation = Operation.lookup(name)
    if operation is None or operation not in allow_list:
        return None
    return operation


DISPATCH_TABLE: dict[Operation, Callable[..., Any]] = {
    Operation.EXECUTE: Database.execute,
    Operation.EXECUTE_QUERY: Database.execute_query,
    Operation.EXECUTE_UPDATE: Database.execute_update,
    Operation.QUERY_DATABASE: Database.query_database,
    Operation.INSERT_INTO: Database.insert_into,
    Operation.RETRIEVE_DATA_FROM_DB: Database.retrieve_data_from_db,
    Operation.GET_TABLE_AS_OBJECT: Database.get_table_as_object,
    Operation.GET_TABLE_AS_ARRAY: Database.get_table_as_array,
    Operation.INSERT_ARRAY_TO_DB_TABLE: Database.insert_array_to_db_table,
}


def invoke(database: Database, operation: Operation, arguments: list[Any]) -> Any:
    """Вызов операции на экземпляре Database"""
    return DISPATCH_TABLE[operation](database, *arguments)


def encode_arguments(operation: Operation, arguments: Iterable[Any]) -> list[Any]:
    """
    Подготовка аргументов к передаче по сети

    Строки и записи для вставки обогащаются типами, так как даты
    и бинарные данные не переживают JSON.
    """
    arguments = [_plain(argument) for argument in arguments]
    if operation is Operation.INSERT_ARRAY_TO_DB_TABLE and len(arguments) > 2:
        arguments[2] = enrich_rows(arguments[2])
    elif operation is Operation.INSERT_INTO and len(arguments) > 1:
        arguments[1] = enrich_records(arguments[1])
    return arguments


def _plain(argument: Any) -> Any:
    """Модели (QueryFilter, LoadOptions) в словари по wire именам"""
    if isinstance(argument, BaseModel):
        return argument.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(argument, (list, tuple)) and any(isinstance(a, BaseModel) for a in argument):
        return [_plain(a) for a in argument]
    return argument
