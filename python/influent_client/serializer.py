"""Line protocol rendering of measurements."""

from __future__ import annotations

from typing import Protocol

from .measurement import Measurement, Value, ValueKind

# Integer fields carry the `i` suffix understood by InfluxDB >= 0.9.3.
INTEGER_SUFFIX = True


class Serializer(Protocol):
    def serialize(self, measurement: Measurement) -> str: ...


def escape(s: str) -> str:
    return s.replace(" ", "\\ ").replace(",", "\\,")


def as_string(s: str) -> str:
    return '"' + s.replace('"', '\\"') + '"'


def as_integer(i: int, suffix: bool = INTEGER_SUFFIX) -> str:
    return f"{i}i" if suffix else str(i)


def as_float(f: float) -> str:
    return repr(f)


def as_boolean(b: bool) -> str:
    return "t" if b else "f"


class LineSerializer:
    """Renders a measurement as a single line protocol record.

    >>> m = Measurement("key").add_tag("tag", "value").add_field("field", "value")
    >>> LineSerializer().serialize(m)
    'key,tag=value field="value"'
    """

    def __init__(self, integer_suffix: bool = INTEGER_SUFFIX):
        self.integer_suffix = integer_suffix

    def format_value(self, value: Value) -> str:
        if value.kind is ValueKind.STRING:
            return as_string(value.data)
        if value.kind is ValueKind.INTEGER:
            return as_integer(value.data, self.integer_suffix)
        if value.kind is ValueKind.FLOAT:
            return as_float(value.data)
        return as_boolean(value.data)

    def serialize(self, measurement: Measurement) -> str:
        line = [escape(measurement.key)]

        for tag, value in measurement.tags:
            line.append(f",{escape(tag)}={escape(value)}")

        for n, (field, value) in enumerate(measurement.fields):
            line.append(" " if n == 0 else ",")
            line.append(f"{escape(field)}={self.format_value(value)}")

        if measurement.timestamp is not None:
            line.append(f" {measurement.timestamp}")

        return "".join(line)
