# packages/dispatch/src/sqlfan_dispatch/fanout.py

"""
Fan-out удаленных задач

FanOutEngine принимает упорядоченный список задач, ограничивает его
MAX_TASKS, отбрасывает операции вне allow-list, отправляет оставшиеся
одновременно и возвращает курсор по результатам в порядке подачи.
Ошибка одной задачи остается в ее результате и не затрагивает соседей.
"""

import asyncio
import time
from typing import Any, Iterable, Iterator, Sequence

import structlog

from sqlfan_core.config import ConnectionSettings
from sqlfan_core.exceptions import ConfigurationError, PolicyError
from sqlfan_core.observability.metrics import FANOUT_TASKS_TOTAL, REMOTE_CALL_DURATION

from sqlfan_dispatch.models import DispatchRequest, TaskDescriptor, TaskResult, TaskStep
from sqlfan_dispatch.operations import (
    DEFAULT_ALLOW_LIST,
    AllowList,
    encode_arguments,
    resolve,
)
from sqlfan_dispatch.transport import MALFORMED, BatchTransport

MAX_TASKS = 20


class TaskResultCursor:
    """
    Pull-итератор по собранным результатам

    Курсор только воспроизводит результаты и никогда не повторяет
    выполнение. После исчерпания advance() всегда возвращает {done: True}.
    """

    def __init__(self, results: Sequence[TaskResult]):
        self._results = list(results)
        self._position = 0

    @property
    def results(self) -> list[TaskResult]:
        return list(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def advance(self) -> TaskStep:
        """Следующий шаг или терминальный {done: True}"""
        if self._position >= len(self._results):
            return TaskStep(done=True)

        index = self._position
        result = self._results[index]
        self._position += 1
        return TaskStep(
            done=False,
            index=index,
            error=result.error,
            value=result.result,
            operation=result.operation,
            tag=result.tag,
        )

    def reset(self) -> None:
        """Перемотка к первому результату"""
        self._position = 0

    def __iter__(self) -> Iterator[TaskStep]:
        while True:
            step = self.advance()
            if step.done:
                return
            yield step


class FanOutEngine:
    """Одновременная отправка задач на dispatch endpoint"""

    def __init__(
        self,
        settings: ConnectionSettings,
        endpoint_url: str | None,
        transport: BatchTransport | None = None,
        allow_list: AllowList = DEFAULT_ALLOW_LIST,
        max_tasks: int = MAX_TASKS,
    ):
        if not endpoint_url:
            raise ConfigurationError(
                "Remote endpoint URL is not configured", config_field="endpoint_url"
            )
        self.settings = settings
        self.endpoint_url = endpoint_url
        self.transport = transport or BatchTransport()
        self.allow_list = allow_list
        self.max_tasks = max_tasks
        self.logger = structlog.get_logger(
            component=self.__class__.__name__, endpoint=endpoint_url
        )

    def prepare(self, tasks: Iterable[Any]) -> list[TaskDescriptor]:
        """
        Отбор задач для отправки

        Raises:
            PolicyError: После фильтрации не осталось ни одной задачи
        """
        descriptors = [TaskDescriptor.coerce(task) for task in tasks]

        if len(descriptors) > self.max_tasks:
            dropped = len(descriptors) - self.max_tasks
            self.logger.warning(
                "Too many tasks, extra tasks dropped",
                submitted=len(descriptors),
                limit=self.max_tasks,
                dropped=dropped,
            )
            FANOUT_TASKS_TOTAL.labels(status="dropped").inc(dropped)
            descriptors = descriptors[: self.max_tasks]

        accepted = []
        for task in descriptors:
            if resolve(task.operation, self.allow_list) is None:
                self.logger.warning("Operation not allowed, task dropped", operation=task.operation)
                FANOUT_TASKS_TOTAL.labels(status="rejected").inc()
                continue
            accepted.append(task)

        if not accepted:
            raise PolicyError("no available methods")

        return accepted

    def _payload(self, task: TaskDescriptor, context: dict[str, Any]) -> dict[str, Any]:
        operation = resolve(task.operation, self.allow_list)
        return DispatchRequest(
            function=operation.value,
            arguments=encode_arguments(operation, task.arguments),
            tag=task.tag,
            context=context,
        ).model_dump(mode="json")

    async def dispatch_async(self, tasks: Iterable[Any]) -> TaskResultCursor:
        """
        Отправка задач и ожидание всех ответов

        Raises:
            PolicyError: Нет разрешенных задач
            RemoteTransportError: Сбой транспорта (весь вызов)
        """
        accepted = self.prepare(tasks)
        context = self.settings.to_context()

        # Слот задачи: готовый результат ошибки кодирования или None
        slots: list[TaskResult | None] = []
        payloads: list[dict[str, Any]] = []
        sent: list[TaskDescriptor] = []
        for task in accepted:
            try:
                payloads.append(self._payload(task, context))
            except Exception as e:
                self.logger.warning(
                    "Task arguments could not be encoded",
                    operation=task.operation,
                    tag=task.tag,
                    error=str(e),
                )
                slots.append(
                    TaskResult(
                        operation=task.operation,
                        arguments=task.arguments,
                        tag=task.tag,
                        error=f"Invalid arguments: {type(e).__name__}: {e}"[:500],
                    )
                )
                continue
            sent.append(task)
            slots.append(None)

        bodies: list[Any] = []
        if payloads:
            FANOUT_TASKS_TOTAL.labels(status="dispatched").inc(len(payloads))
            start_time = time.time()
            try:
                bodies = await self.transport.post_all(self.endpoint_url, payloads)
            finally:
                duration = time.time() - start_time
                REMOTE_CALL_DURATION.labels(mode="fanout").observe(duration)
                if self.settings.show_timing:
                    self.logger.info(
                        "Fan-out finished",
                        tasks=len(payloads),
                        duration_ms=round(duration * 1000, 3),
                    )

        received = iter(
            TaskResult.from_response(None if body is MALFORMED else body, task)
            for body, task in zip(bodies, sent, strict=True)
        )
        results = [slot if slot is not None else next(received) for slot in slots]

        failed = sum(1 for result in results if not result.ok)
        FANOUT_TASKS_TOTAL.labels(status="failed").inc(failed)
        FANOUT_TASKS_TOTAL.labels(status="succeeded").inc(len(results) - failed)
        if failed:
            self.logger.warning("Some fan-out tasks failed", failed=failed, total=len(results))

        return TaskResultCursor(results)

    def dispatch(self, tasks: Iterable[Any]) -> TaskResultCursor:
        """Синхронная обертка над dispatch_async"""
        return asyncio.run(self.dispatch_async(tasks))
