# packages/components/loader_sql/src/loader_sql/binders.py

"""
Привязка значений к параметрам INSERT по семантическому типу
"""

import json
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Callable, Iterable

from sqlfan_core.values import TypedValue, ValueKind

Binder = Callable[[Any], Any]


def _bind_null(value: Any) -> None:
    return None


def _bind_boolean(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _bind_integer(value: Any) -> int:
    return int(value)


def _bind_double(value: Any) -> float | Decimal:
    # Decimal передается драйверу без потери точности
    if isinstance(value, Decimal):
        return value
    return float(value)


def _bind_string(value: Any) -> str:
    return str(value)


def _bind_timestamp(value: Any) -> Any:
    """Дата/время; при неудаче - строковое представление"""
    if isinstance(value, (datetime, date, time)):
        return value
    try:
        return datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return str(value)


def _bind_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def _bind_json(value: Any) -> str:
    """JSON текст для object/array; при неудаче - str()"""
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


BINDERS: dict[ValueKind, Binder] = {
    ValueKind.NULL: _bind_null,
    ValueKind.BOOLEAN: _bind_boolean,
    ValueKind.INTEGER: _bind_integer,
    ValueKind.DOUBLE: _bind_double,
    ValueKind.STRING: _bind_string,
    ValueKind.DATE: _bind_timestamp,
    ValueKind.BLOB: _bind_bytes,
    ValueKind.ARRAY: _bind_json,
    ValueKind.OBJECT: _bind_json,
    ValueKind.UNKNOWN: _bind_string,
}


def coerce_to_string(typed: TypedValue) -> str | None:
    """Приведение к строке (JSON текст для object/array)"""
    if typed.value is None:
        return None
    if typed.kind in (ValueKind.ARRAY, ValueKind.OBJECT):
        return _bind_json(typed.value)
    if typed.kind is ValueKind.DATE:
        return typed.value.isoformat() if hasattr(typed.value, "isoformat") else str(typed.value)
    return str(typed.value)


class ValueBinder:
    """
    Выбор binder для ячейки

    detect_types=False: любое непустое значение привязывается строкой.
    Типы из string_kinds приводятся к строке. Ячейки в wire формате
    уже классифицированы на стороне вызывающего.
    """

    def __init__(self, detect_types: bool = True, string_kinds: Iterable[ValueKind] = ()):
        self.detect_types = detect_types
        self.string_kinds = frozenset(ValueKind(kind) for kind in string_kinds)

    def classify(self, value: Any) -> TypedValue:
        return TypedValue.of(value)

    def bind(self, typed: TypedValue) -> Any:
        """Значение для параметра запроса"""
        if typed.value is None:
            return None
        if not self.detect_types or typed.kind in self.string_kinds:
            return coerce_to_string(typed)
        return BINDERS[typed.kind](typed.value)
