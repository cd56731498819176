"""
Классификация значений по семантическим типам

classify() сопоставляет любому значению один ValueKind. Бинарные данные и даты
не переживают JSON сериализацию, поэтому строки для вставки, которые уходят
в удаленную задачу, заранее обогащаются: каждая ячейка превращается
в ``{"$kind": ..., "$value": ...}`` и восстанавливается на стороне endpoint.
"""

import base64
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from sqlfan_core.exceptions import ValidationError

KIND_KEY = "$kind"
VALUE_KEY = "$value"


class ValueKind(str, Enum):
    """Семантические типы значений"""

    NULL = "null"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    DOUBLE = "double"
    STRING = "string"
    DATE = "date"
    BLOB = "blob"
    ARRAY = "array"
    OBJECT = "object"
    UNKNOWN = "unknown"


def classify(value: Any) -> ValueKind:
    """Определение семантического типа значения"""
    if value is None:
        return ValueKind.NULL
    # bool - подкласс int, проверяем первым
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, int):
        return ValueKind.INTEGER
    if isinstance(value, (float, Decimal)):
        return ValueKind.DOUBLE
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (datetime, date, time)):
        return ValueKind.DATE
    if isinstance(value, (bytes, bytearray, memoryview)):
        return ValueKind.BLOB
    if isinstance(value, (list, tuple)):
        return ValueKind.ARRAY
    if isinstance(value, dict):
        return ValueKind.OBJECT
    return ValueKind.UNKNOWN


@dataclass(frozen=True)
class TypedValue:
    """Значение вместе с его семантическим типом"""

    kind: ValueKind
    value: Any

    @classmethod
    def of(cls, value: Any) -> "TypedValue":
        """Классификация значения (ячейки в wire формате уже классифицированы)"""
        if is_wire_value(value):
            return cls.from_wire(value)
        return cls(classify(value), value)

    def to_wire(self) -> dict[str, Any]:
        """JSON-совместимое представление"""
        value = self.value
        if self.kind is ValueKind.DATE:
            value = value.isoformat()
        elif self.kind is ValueKind.BLOB:
            value = base64.b64encode(bytes(value)).decode("ascii")
        elif self.kind is ValueKind.DOUBLE and isinstance(value, Decimal):
            value = float(value)
        elif self.kind is ValueKind.ARRAY:
            value = list(value)
        elif self.kind is ValueKind.UNKNOWN:
            value = str(value)
        return {KIND_KEY: self.kind.value, VALUE_KEY: value}

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> "TypedValue":
        """Восстановление значения из wire формата"""
        try:
            kind = ValueKind(payload[KIND_KEY])
        except (KeyError, ValueError) as e:
            raise ValidationError(
                f"Invalid typed value: {payload!r}", field_name=KIND_KEY
            ) from e

        value = payload.get(VALUE_KEY)
        if value is None:
            return cls(kind, None)

        if kind is ValueKind.DATE and isinstance(value, str):
            value = _parse_temporal(value)
        elif kind is ValueKind.BLOB and isinstance(value, str):
            value = base64.b64decode(value)
        return cls(kind, value)


def _parse_temporal(text: str) -> Any:
    """ISO-8601 строка обратно в datetime/date/time; нераспознанная остается строкой"""
    for parser in (datetime.fromisoformat, date.fromisoformat, time.fromisoformat):
        try:
            return parser(text)
        except ValueError:
            continue
    return text


def is_wire_value(value: Any) -> bool:
    """Проверка, что значение уже в wire формате TypedValue"""
    return isinstance(value, dict) and set(value) == {KIND_KEY, VALUE_KEY}


def enrich_rows(rows: Iterable[Sequence[Any]]) -> list[list[dict[str, Any]]]:
    """Обогащение строк типами перед отправкой в удаленную задачу"""
    return [[TypedValue.of(cell).to_wire() for cell in row] for row in rows]


def enrich_records(
    records: Mapping[str, Any] | Iterable[Mapping[str, Any]],
) -> list[dict[str, dict[str, Any]]]:
    """Обогащение записей (словарей колонка -> значение) типами"""
    if isinstance(records, Mapping):
        records = [records]
    return [
        {column: TypedValue.of(cell).to_wire() for column, cell in record.items()}
        for record in records
    ]
