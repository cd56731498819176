# packages/dispatch/src/sqlfan_dispatch/invoker.py

"""
Синхронный вызов одной удаленной операции
"""

import time
from typing import Any, Sequence

import httpx
import structlog

from sqlfan_core.config import ConnectionSettings
from sqlfan_core.exceptions import (
    ConfigurationError,
    PolicyError,
    RemoteOperationError,
    RemoteTransportError,
)
from sqlfan_core.observability.metrics import REMOTE_CALL_DURATION

from sqlfan_dispatch.models import DispatchRequest, TaskDescriptor, TaskResult
from sqlfan_dispatch.operations import (
    DEFAULT_ALLOW_LIST,
    AllowList,
    Operation,
    encode_arguments,
    resolve,
)
from sqlfan_dispatch.transport import DEFAULT_TIMEOUT


class RemoteInvoker:
    """Одна операция - один POST на dispatch endpoint"""

    def __init__(
        self,
        settings: ConnectionSettings,
        endpoint_url: str | None,
        client: httpx.Client | None = None,
        allow_list: AllowList = DEFAULT_ALLOW_LIST,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if not endpoint_url:
            raise ConfigurationError(
                "Remote endpoint URL is not configured", config_field="endpoint_url"
            )
        self.settings = settings
        self.endpoint_url = endpoint_url
        self.client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None
        self.allow_list = allow_list
        self.logger = structlog.get_logger(
            component=self.__class__.__name__, endpoint=endpoint_url
        )

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "RemoteInvoker":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def invoke(
        self,
        operation: str | Operation,
        arguments: Sequence[Any] = (),
        tag: Any = None,
    ) -> Any:
        """
        Вызов операции и распаковка результата

        Returns:
            Результат операции; None, если ошибка заглушена mute_exceptions

        Raises:
            PolicyError: Операция вне allow-list
            RemoteTransportError: Сбой HTTP
            RemoteOperationError: Удаленная операция вернула ошибку
        """
        resolved = resolve(operation, self.allow_list)
        if resolved is None:
            raise PolicyError(f"Operation is not allowed: {operation}", operation=str(operation))

        payload = DispatchRequest(
            function=resolved.value,
            arguments=encode_arguments(resolved, arguments),
            tag=tag,
            context=self.settings.to_context(),
        ).model_dump(mode="json")

        start_time = time.time()
        try:
            result = self._post(payload)
            if result.ok:
                return result.result

            if self.settings.mute_exceptions:
                self.logger.warning(
                    "Remote operation failed, exception muted",
                    operation=resolved.value,
                    error=result.error,
                    tag=tag,
                )
                return None
            raise RemoteOperationError(result.error, operation=resolved.value, tag=tag)
        finally:
            duration = time.time() - start_time
            REMOTE_CALL_DURATION.labels(mode="single").observe(duration)
            if self.settings.show_timing:
                self.logger.info(
                    "Remote call finished",
                    operation=resolved.value,
                    duration_ms=round(duration * 1000, 3),
                )

    def _post(self, payload: dict[str, Any]) -> TaskResult:
        try:
            response = self.client.post(self.endpoint_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteTransportError(
                f"Remote endpoint returned HTTP {e.response.status_code}",
                endpoint=self.endpoint_url,
                status_code=e.response.status_code,
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            raise RemoteTransportError(
                f"Remote dispatch failed: {e}", endpoint=self.endpoint_url, original_error=e
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        task = TaskDescriptor(
            operation=payload["function"], arguments=payload["arguments"], tag=payload["tag"]
        )
        return TaskResult.from_response(body, task)


class RemoteDatabase:
    """Удаленные аналоги операций Database через RemoteInvoker"""

    def __init__(self, invoker: RemoteInvoker):
        self.invoker = invoker

    def execute(self, sql: str, database: str | None = None, tag: Any = None) -> Any:
        return self.invoker.invoke(Operation.EXECUTE, [sql, database], tag)

    def execute_query(self, sql: str, database: str | None = None, tag: Any = None) -> Any:
        return self.invoker.invoke(Operation.EXECUTE_QUERY, [sql, database], tag)

    def execute_update(self, sql: str, database: str | None = None, tag: Any = None) -> Any:
        return self.invoker.invoke(Operation.EXECUTE_UPDATE, [sql, database], tag)

    def query_database(self, sql: str, database: str | None = None, tag: Any = None) -> Any:
        return self.invoker.invoke(Operation.QUERY_DATABASE, [sql, database], tag)

    def insert_into(
        self, table: str, records: Any, options: dict[str, Any] | None = None, tag: Any = None
    ) -> Any:
        return self.invoker.invoke(Operation.INSERT_INTO, [table, records, options], tag)

    def retrieve_data_from_db(
        self,
        table: str,
        columns: Sequence[str] | None = None,
        filters: Any = None,
        database: str | None = None,
        shape: str = "object",
        count_only: bool = False,
        tag: Any = None,
    ) -> Any:
        return self.invoker.invoke(
            Operation.RETRIEVE_DATA_FROM_DB,
            [table, _list_or_none(columns), filters, database, shape, count_only],
            tag,
        )

    def get_table_as_object(
        self,
        table: str,
        columns: Sequence[str] | None = None,
        filters: Any = None,
        database: str | None = None,
        tag: Any = None,
    ) -> Any:
        return self.invoker.invoke(
            Operation.GET_TABLE_AS_OBJECT, [table, _list_or_none(columns), filters, database], tag
        )

    def get_table_as_array(
        self,
        table: str,
        columns: Sequence[str] | None = None,
        filters: Any = None,
        database: str | None = None,
        tag: Any = None,
    ) -> Any:
        return self.invoker.invoke(
            Operation.GET_TABLE_AS_ARRAY, [table, _list_or_none(columns), filters, database], tag
        )

    def insert_array_to_db_table(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        options: dict[str, Any] | None = None,
        tag: Any = None,
    ) -> Any:
        return self.invoker.invoke(
            Operation.INSERT_ARRAY_TO_DB_TABLE, [table, list(columns), rows, options], tag
        )


def _list_or_none(columns: Any) -> Any:
    if columns is None or isinstance(columns, str):
        return columns
    return list(columns)
