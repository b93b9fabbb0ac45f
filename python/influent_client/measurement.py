from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def _check_int64(number: int, what: str) -> int:
    if isinstance(number, bool) or not isinstance(number, int):
        raise TypeError(f"{what} must be an int, got {type(number).__name__}")
    if not INT64_MIN <= number <= INT64_MAX:
        raise ValueError(f"{what} {number} does not fit in a signed 64-bit integer")
    return number


class ValueKind(Enum):
    STRING = "string"
    FLOAT = "float"
    INTEGER = "integer"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class Value:
    """A field value: string, float, integer or boolean."""

    kind: ValueKind
    data: Union[str, float, int, bool]

    @classmethod
    def string(cls, text: str) -> "Value":
        if not isinstance(text, str):
            raise TypeError(f"string value must be str, got {type(text).__name__}")
        return cls(ValueKind.STRING, text)

    @classmethod
    def float(cls, number: float) -> "Value":
        if isinstance(number, bool) or not isinstance(number, (int, float)):
            raise TypeError(f"float value must be a number, got {type(number).__name__}")
        number = float(number)
        if not math.isfinite(number):
            raise ValueError(f"float value must be finite, got {number!r}")
        return cls(ValueKind.FLOAT, number)

    @classmethod
    def integer(cls, number: int) -> "Value":
        return cls(ValueKind.INTEGER, _check_int64(number, "integer value"))

    @classmethod
    def boolean(cls, flag: bool) -> "Value":
        if not isinstance(flag, bool):
            raise TypeError(f"boolean value must be bool, got {type(flag).__name__}")
        return cls(ValueKind.BOOLEAN, flag)

    @classmethod
    def of(cls, obj: Any) -> "Value":
        """Build a value from a plain Python scalar, inferring its kind."""
        if isinstance(obj, Value):
            return obj
        # bool is a subclass of int
        if isinstance(obj, bool):
            return cls.boolean(obj)
        if isinstance(obj, int):
            return cls.integer(obj)
        if isinstance(obj, float):
            return cls.float(obj)
        if isinstance(obj, str):
            return cls.string(obj)
        raise TypeError(f"unsupported field value type: {type(obj).__name__}")


class Measurement:
    """One point of a series: key, tags, fields and an optional timestamp.

    Tags and fields are kept in plain dicts and exposed in ascending key
    order, so the serialized form never depends on insertion order.
    A measurement without fields is accepted here but produces a line the
    server will reject.
    """

    def __init__(self, key: str, timestamp: Optional[int] = None):
        if not isinstance(key, str) or not key:
            raise ValueError("measurement key must be a non-empty string")
        self.key = key
        self.timestamp: Optional[int] = None
        self._tags: dict[str, str] = {}
        self._fields: dict[str, Value] = {}
        if timestamp is not None:
            self.set_timestamp(timestamp)

    def add_tag(self, name: str, value: str) -> "Measurement":
        self._tags[str(name)] = str(value)
        return self

    def add_field(self, name: str, value: Any) -> "Measurement":
        self._fields[str(name)] = Value.of(value)
        return self

    def set_timestamp(self, timestamp: int) -> "Measurement":
        self.timestamp = _check_int64(timestamp, "timestamp")
        return self

    @property
    def tags(self) -> list[tuple[str, str]]:
        return sorted(self._tags.items())

    @property
    def fields(self) -> list[tuple[str, Value]]:
        return sorted(self._fields.items(), key=lambda item: item[0])

    def __repr__(self) -> str:
        fields = {name: value.data for name, value in self.fields}
        return (
            f"Measurement(key={self.key!r}, tags={dict(self.tags)!r}, "
            f"fields={fields!r}, timestamp={self.timestamp!r})"
        )


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str
    database: str

    @property
    def has_auth(self) -> bool:
        return bool(self.username) and bool(self.password)
