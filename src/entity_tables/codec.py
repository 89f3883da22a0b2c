"""Per-kind conversion between Python values and SQL parameters/columns."""

from __future__ import annotations

import datetime
import numbers
import uuid
from dataclasses import dataclass
from typing import Any

from entity_tables.errors import UnsupportedTypeError
from entity_tables.types import ScalarKind


@dataclass(frozen=True)
class BoundParameter:
    """A positional SQL parameter tagged with the kind of the column it targets.

    A SQL NULL is ``BoundParameter(kind, None)``: the kind is kept so drivers
    that need typed NULLs can use it.
    """

    kind: ScalarKind
    value: Any

    @property
    def is_null(self) -> bool:
        return self.value is None


class FieldCodec:
    """Base codec: encodes values for binding and decodes them from rows."""

    kind: ScalarKind

    def __init__(self, kind: ScalarKind) -> None:
        self.kind = kind

    def encode(self, value: Any, column: str | None = None) -> BoundParameter:
        """Encode a value, binding a NULL tagged with this kind when absent."""
        if value is None:
            return BoundParameter(self.kind, None)
        return BoundParameter(self.kind, self.to_sql(value, column))

    def decode(self, row: Any, column: str) -> Any:
        """Read ``column`` from ``row``; SQL NULL decodes as None."""
        raw = row[column]
        if raw is None:
            return None
        return self.from_sql(raw, column)

    def to_sql(self, value: Any, column: str | None) -> Any:
        raise NotImplementedError

    def from_sql(self, raw: Any, column: str | None) -> Any:
        raise NotImplementedError

    def _mismatch(self, value: Any, column: str | None) -> UnsupportedTypeError:
        return UnsupportedTypeError(
            f"Expected {self.kind.python_type.__name__} for {self.kind.value} value "
            f"but received {type(value).__name__}",
            column,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value})"


class TextCodec(FieldCodec):
    def to_sql(self, value: Any, column: str | None) -> Any:
        if not isinstance(value, str):
            raise self._mismatch(value, column)
        return value

    def from_sql(self, raw: Any, column: str | None) -> Any:
        return str(raw)


_INTEGER_RANGES = {
    ScalarKind.INT16: (-(2**15), 2**15 - 1),
    ScalarKind.INT32: (-(2**31), 2**31 - 1),
    ScalarKind.INT64: (-(2**63), 2**63 - 1),
}


class IntegerCodec(FieldCodec):
    """Codec for int16/int32/int64 columns."""

    def to_sql(self, value: Any, column: str | None) -> Any:
        if isinstance(value, bool) or not isinstance(value, numbers.Integral):
            raise self._mismatch(value, column)
        value = int(value)
        low, high = _INTEGER_RANGES[self.kind]
        if not low <= value <= high:
            raise UnsupportedTypeError(f"Value {value} is out of range for {self.kind.value}", column)
        return value

    def from_sql(self, raw: Any, column: str | None) -> Any:
        return int(raw)


class FloatCodec(FieldCodec):
    """Codec for double and float columns."""

    def to_sql(self, value: Any, column: str | None) -> Any:
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise self._mismatch(value, column)
        return float(value)

    def from_sql(self, raw: Any, column: str | None) -> Any:
        return float(raw)


class BooleanCodec(FieldCodec):
    # Stored as 0/1 so it survives drivers without a native boolean type
    def to_sql(self, value: Any, column: str | None) -> Any:
        if not isinstance(value, bool):
            raise self._mismatch(value, column)
        return int(value)

    def from_sql(self, raw: Any, column: str | None) -> Any:
        if isinstance(raw, str):
            return raw.strip().lower() in ("1", "true", "t", "yes")
        return bool(raw)


class UuidCodec(FieldCodec):
    def to_sql(self, value: Any, column: str | None) -> Any:
        if isinstance(value, uuid.UUID):
            return str(value)
        if isinstance(value, str):
            try:
                return str(uuid.UUID(value))
            except ValueError as exc:
                raise UnsupportedTypeError(f"Invalid UUID string {value!r}", column) from exc
        raise self._mismatch(value, column)

    def from_sql(self, raw: Any, column: str | None) -> Any:
        if isinstance(raw, uuid.UUID):
            return raw
        if isinstance(raw, bytes):
            return uuid.UUID(bytes=raw)
        return uuid.UUID(str(raw))


class TimestampCodec(FieldCodec):
    """Timestamps travel as ISO-8601 text."""

    def to_sql(self, value: Any, column: str | None) -> Any:
        if not isinstance(value, datetime.datetime):
            raise self._mismatch(value, column)
        return value.isoformat()

    def from_sql(self, raw: Any, column: str | None) -> Any:
        if isinstance(raw, datetime.datetime):
            return raw
        try:
            return datetime.datetime.fromisoformat(str(raw))
        except ValueError as exc:
            raise UnsupportedTypeError(f"Invalid timestamp {raw!r}", column) from exc


_CODECS: dict[ScalarKind, FieldCodec] = {
    ScalarKind.TEXT: TextCodec(ScalarKind.TEXT),
    ScalarKind.INT16: IntegerCodec(ScalarKind.INT16),
    ScalarKind.INT32: IntegerCodec(ScalarKind.INT32),
    ScalarKind.INT64: IntegerCodec(ScalarKind.INT64),
    ScalarKind.DOUBLE: FloatCodec(ScalarKind.DOUBLE),
    ScalarKind.FLOAT: FloatCodec(ScalarKind.FLOAT),
    ScalarKind.BOOLEAN: BooleanCodec(ScalarKind.BOOLEAN),
    ScalarKind.UUID: UuidCodec(ScalarKind.UUID),
    ScalarKind.TIMESTAMP: TimestampCodec(ScalarKind.TIMESTAMP),
}


def codec_for(kind: Any) -> FieldCodec:
    """Return the codec for a scalar kind.

    Raises:
        UnsupportedTypeError: If ``kind`` is not one of the supported kinds.
    """
    codec = _CODECS.get(kind) if isinstance(kind, ScalarKind) else None
    if codec is None:
        raise UnsupportedTypeError(f"Unsupported scalar kind {kind!r}")
    return codec
