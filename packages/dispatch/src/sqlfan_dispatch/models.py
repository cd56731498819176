# packages/dispatch/src/sqlfan_dispatch/models.py

"""
Модели удаленного протокола

Запрос: {function, arguments, tag, context}
Ответ: {FunctionName, Arguments, Tag, Result?, Error?}
"""

from dataclasses import asdict, dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from sqlfan_core.exceptions import ValidationError


class TaskDescriptor(BaseModel):
    """Одна задача fan-out: операция, аргументы и тег"""

    model_config = ConfigDict(frozen=True)

    operation: str = Field(..., description="Wire имя операции")
    arguments: list[Any] = Field(default_factory=list)
    tag: Any = Field(default=None, description="Возвращается без изменений")

    @classmethod
    def coerce(cls, task: Any) -> "TaskDescriptor":
        """Задача из TaskDescriptor, кортежа (operation, arguments[, tag]) или словаря"""
        if isinstance(task, cls):
            return task
        if isinstance(task, (tuple, list)) and 1 <= len(task) <= 3:
            operation, *rest = task
            arguments = rest[0] if rest else []
            tag = rest[1] if len(rest) > 1 else None
            return cls._build(operation, arguments, tag)
        if isinstance(task, dict):
            return cls._build(
                task.get("operation", task.get("function")),
                task.get("arguments"),
                task.get("tag"),
            )
        raise ValidationError(
            f"Cannot build a task from {type(task).__name__}", field_name="tasks"
        )

    @classmethod
    def _build(cls, operation: Any, arguments: Any, tag: Any) -> "TaskDescriptor":
        if arguments is not None and not isinstance(arguments, (list, tuple)):
            arguments = [arguments]
        try:
            return cls(operation=operation, arguments=list(arguments or []), tag=tag)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid task: {e.errors(include_url=False)}",
                field_name="tasks",
                original_error=e,
            ) from e


class DispatchRequest(BaseModel):
    """Тело запроса к dispatch endpoint"""

    function: str
    arguments: list[Any] = Field(default_factory=list)
    tag: Any = None
    context: dict[str, Any] = Field(default_factory=dict)


class TaskResult(BaseModel):
    """Результат одной удаленной задачи"""

    model_config = ConfigDict(populate_by_name=True)

    operation: str | None = Field(default=None, alias="FunctionName")
    arguments: list[Any] = Field(default_factory=list, alias="Arguments")
    tag: Any = Field(default=None, alias="Tag")
    result: Any = Field(default=None, alias="Result")
    error: str | None = Field(default=None, alias="Error")

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def from_response(cls, payload: Any, task: TaskDescriptor) -> "TaskResult":
        """Результат из тела ответа; некорректное тело становится ошибкой задачи"""
        if not isinstance(payload, dict):
            return cls(
                operation=task.operation,
                arguments=task.arguments,
                tag=task.tag,
                error=f"Malformed response body: {payload!r}"[:500],
            )

        arguments = payload.get("Arguments")
        if not isinstance(arguments, list):
            arguments = task.arguments
        error = payload.get("Error")
        return cls(
            operation=str(payload.get("FunctionName") or task.operation),
            arguments=arguments,
            tag=payload.get("Tag", task.tag),
            result=payload.get("Result"),
            error=str(error) if error is not None else None,
        )

    def to_wire(self) -> dict[str, Any]:
        """Тело ответа endpoint (Result или Error)"""
        body: dict[str, Any] = {
            "FunctionName": self.operation,
            "Arguments": self.arguments,
            "Tag": self.tag,
        }
        if self.error is not None:
            body["Error"] = self.error
        else:
            body["Result"] = self.result
        return body


@dataclass(frozen=True)
class TaskStep:
    """Шаг итератора результатов fan-out"""

    done: bool
    index: int | None = None
    error: str | None = None
    value: Any = None
    operation: str | None = None
    tag: Any = None

    def to_dict(self) -> dict[str, Any]:
        if self.done:
            return {"done": True}
        return asdict(self)
