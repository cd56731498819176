# packages/dispatch/src/sqlfan_dispatch/__init__.py

"""
sqlfan_dispatch - удаленное выполнение операций над базой данных

Компоненты:
- Operation / allow-list: закрытый набор операций
- Database: локальный фасад операций
- FanOutEngine: одновременная отправка до 20 задач
- RemoteInvoker / RemoteDatabase: синхронный вызов одной операции
- Dispatcher / create_app: принимающая сторона (FastAPI)
"""

from sqlfan_dispatch.database import Database
from sqlfan_dispatch.endpoint import LOCKED_MESSAGE, Dispatcher, create_app, encode_result
from sqlfan_dispatch.fanout import MAX_TASKS, FanOutEngine, TaskResultCursor
from sqlfan_dispatch.invoker import RemoteDatabase, RemoteInvoker
from sqlfan_dispatch.models import DispatchRequest, TaskDescriptor, TaskResult, TaskStep
from sqlfan_dispatch.operations import (
    DEFAULT_ALLOW_LIST,
    DISPATCH_TABLE,
    AllowList,
    Operation,
    build_allow_list,
    encode_arguments,
    resolve,
)
from sqlfan_dispatch.transport import BatchTransport

__version__ = "0.1.0"

__all__ = [
    # Operations
    "Operation",
    "AllowList",
    "DEFAULT_ALLOW_LIST",
    "DISPATCH_TABLE",
    "build_allow_list",
    "encode_arguments",
    "resolve",
    # Local
    "Database",
    # Remote
    "TaskDescriptor",
    "TaskResult",
    "TaskStep",
    "DispatchRequest",
    "BatchTransport",
    "FanOutEngine",
    "TaskResultCursor",
    "MAX_TASKS",
    "RemoteInvoker",
    "RemoteDatabase",
    # Endpoint
    "Dispatcher",
    "create_app",
    "encode_result",
    "LOCKED_MESSAGE",
]
