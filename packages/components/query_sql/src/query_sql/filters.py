# packages/components/query_sql/src/query_sql/filters.py

"""
Декларативная модель фильтра запроса

Фильтр содержит не более одной группы условий (value, диапазон, like,
notlike или regex) и необязательные сортировку и пагинацию. Фильтр без
условия допустим только для sort/limit/offset.
"""

from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from sqlfan_core.exceptions import ValidationError

Direction = Literal["asc", "desc"]

# Группы условий в порядке приоритета
CONDITION_GROUPS: dict[str, tuple[str, ...]] = {
    "value": ("value",),
    "range": ("value_from", "value_to"),
    "like": ("like",),
    "notlike": ("notlike",),
    "regex": ("regex",),
}


class QueryFilter(BaseModel):
    """Один фильтр запроса"""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    column: str | None = Field(default=None, description="Колонка условия")

    # Группы условий (не более одной)
    value: Any = Field(default=None, description="Точное совпадение")
    value_from: Any = Field(default=None, description="Нижняя граница диапазона")
    value_to: Any = Field(default=None, description="Верхняя граница диапазона")
    like: str | None = Field(default=None, description="Шаблон LIKE")
    notlike: str | None = Field(default=None, description="Шаблон NOT LIKE")
    regex: str | None = Field(default=None, description="Регулярное выражение")

    # Сортировка и пагинация
    sort: str | None = Field(default=None, description="Колонка сортировки")
    direction: Direction | None = Field(default=None, description="Направление сортировки")
    limit: int | None = Field(default=None, ge=0, description="Максимум строк")
    offset: int | None = Field(default=None, ge=0, description="Смещение")

    to_unix_time: bool = Field(
        default=False, description="Сравнивать даты как epoch seconds"
    )

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @model_validator(mode="after")
    def validate_condition_groups(self) -> "QueryFilter":
        groups = self.condition_groups
        if len(groups) > 1:
            raise ValueError(
                f"Filter sets more than one condition group: {', '.join(groups)}"
            )
        if groups and not self.column:
            raise ValueError(f"Condition '{groups[0]}' requires a column")
        return self

    @property
    def condition_groups(self) -> list[str]:
        """Заполненные группы условий"""
        return [
            name
            for name, fields in CONDITION_GROUPS.items()
            if any(getattr(self, field) is not None for field in fields)
        ]

    @property
    def has_condition(self) -> bool:
        return bool(self.condition_groups)


def parse_filter(data: Any) -> QueryFilter:
    """Создание фильтра из словаря с ошибкой валидации sqlfan"""
    if isinstance(data, QueryFilter):
        return data
    if not isinstance(data, dict):
        raise ValidationError(
            f"Filter must be an object, got {type(data).__name__}",
            field_name="filters",
        )
    try:
        return QueryFilter.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Malformed filter: {e.errors(include_url=False)}",
            field_name="filters",
            original_error=e,
        ) from e


def coerce_filters(filters: Any) -> list[QueryFilter]:
    """
    Приведение одного фильтра или списка фильтров к списку QueryFilter

    Args:
        filters: None, QueryFilter, словарь или список из них

    Returns:
        Упорядоченный список фильтров
    """
    if filters is None:
        return []
    if isinstance(filters, (QueryFilter, dict)):
        return [parse_filter(filters)]
    if isinstance(filters, (list, tuple)):
        return [parse_filter(item) for item in filters]

    raise ValidationError(
        f"Filters must be an object or a list, got {type(filters).__name__}",
        field_name="filters",
    )
