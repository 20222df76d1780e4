"""
QuestDB column types and the value codec.

Every supported column type fixes three things:
- the Python runtime kinds it accepts,
- the keyword used to declare it in `CREATE TABLE`,
- how a value is encoded into an ILP (Influx Line Protocol) field value.

`long256` and `geohash` are recognised names but are never accepted.
"""

from __future__ import annotations

import base64
import dataclasses
import json
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import numpy as np

from .errors import TypeMismatchError


class ColumnType(str, Enum):
    # true / false
    BOOLEAN = "boolean"
    # 8-bit signed integer
    BYTE = "byte"
    # 16-bit signed integer
    SHORT = "short"
    # single unicode character
    CHAR = "char"
    # 32-bit signed integer
    INT = "int"
    # 32-bit float
    FLOAT = "float"
    # interned string, indexable
    SYMBOL = "symbol"
    STRING = "string"
    # stored as base64 encoded JSON text
    JSON = "json"
    # 64-bit signed integer
    LONG = "long"
    # milliseconds since the Unix epoch
    DATE = "date"
    # microseconds since the Unix epoch
    TIMESTAMP = "timestamp"
    # 64-bit float
    DOUBLE = "double"
    # stored as base64 encoded text
    BINARY = "binary"
    # unsupported
    LONG256 = "long256"
    # unsupported
    GEOHASH = "geohash"

    def __str__(self) -> str:
        return str(self.value)


# Directive pseudo-type: the field is a nested record flattened into its parent.
EMBEDDED = "embedded"

SUPPORTED_TYPES: frozenset[ColumnType] = frozenset(
    {
        ColumnType.BOOLEAN,
        ColumnType.BYTE,
        ColumnType.SHORT,
        ColumnType.CHAR,
        ColumnType.INT,
        ColumnType.FLOAT,
        ColumnType.SYMBOL,
        ColumnType.STRING,
        ColumnType.JSON,
        ColumnType.LONG,
        ColumnType.DATE,
        ColumnType.TIMESTAMP,
        ColumnType.DOUBLE,
        ColumnType.BINARY,
    }
)

UNSUPPORTED_TYPES: frozenset[ColumnType] = frozenset({ColumnType.LONG256, ColumnType.GEOHASH})

# Column types that are stored as text by the ingestion path.
TEXT_STORED_TYPES: frozenset[ColumnType] = frozenset({ColumnType.BINARY, ColumnType.JSON})


def is_unsupported_type(name: str | ColumnType) -> bool:
    """True for recognised column types the codec never accepts (long256, geohash)."""
    return str(name) in {t.value for t in UNSUPPORTED_TYPES}


def is_supported_type(name: str | ColumnType) -> bool:
    """True if `name` is a column type the codec can encode."""
    try:
        return ColumnType(str(name)) in SUPPORTED_TYPES
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Accepted kinds
# ---------------------------------------------------------------------------

_INT_RANGES: dict[ColumnType, tuple[int, int]] = {
    ColumnType.BYTE: (-(2**7), 2**7 - 1),
    ColumnType.SHORT: (-(2**15), 2**15 - 1),
    ColumnType.INT: (-(2**31), 2**31 - 1),
    ColumnType.LONG: (-(2**63), 2**63 - 1),
    ColumnType.DATE: (-(2**63), 2**63 - 1),
    ColumnType.TIMESTAMP: (-(2**63), 2**63 - 1),
}

# Fixed-width numpy integer kinds that widen losslessly into each column type.
_NUMPY_INT_KINDS: dict[ColumnType, tuple[type, ...]] = {
    ColumnType.BYTE: (np.int8,),
    ColumnType.SHORT: (np.int8, np.uint8, np.int16),
    ColumnType.INT: (np.int8, np.uint8, np.int16, np.uint16, np.int32),
    ColumnType.LONG: (np.int8, np.uint8, np.int16, np.uint16, np.int32, np.uint32, np.int64),
    ColumnType.DATE: (np.int64,),
    ColumnType.TIMESTAMP: (np.int64,),
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _kind(v: Any) -> str:
    return type(v).__name__


def _is_bool(v: Any) -> bool:
    return isinstance(v, (bool, np.bool_))


def _as_int(v: Any, column_type: ColumnType) -> int | None:
    """Return `v` as a Python int if it is an accepted integer kind for `column_type`."""
    if _is_bool(v):
        return None
    if isinstance(v, np.integer):
        if isinstance(v, _NUMPY_INT_KINDS[column_type]):
            return int(v)
        return None
    if isinstance(v, int):
        lo, hi = _INT_RANGES[column_type]
        if lo <= v <= hi:
            return int(v)
        raise TypeMismatchError(_kind(v), str(column_type), detail=f"value {v} out of range [{lo}, {hi}]")
    return None


def _as_utc(dt: datetime) -> datetime:
    # naive datetimes are taken to be UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def epoch_millis(dt: datetime) -> int:
    return (_as_utc(dt) - _EPOCH) // timedelta(milliseconds=1)


def epoch_micros(dt: datetime) -> int:
    return (_as_utc(dt) - _EPOCH) // timedelta(microseconds=1)


# ---------------------------------------------------------------------------
# ILP escaping
# ---------------------------------------------------------------------------


def escape_name(s: str) -> str:
    """Escape a table name, column name or symbol value for ILP."""
    out = str(s).replace("\\", "\\\\")
    for ch in (",", "=", " "):
        out = out.replace(ch, "\\" + ch)
    return out.replace("\n", "\\\n")


def escape_string(s: str) -> str:
    """Escape the body of a quoted ILP string field."""
    return str(s).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\\n")


def _quote(s: str) -> str:
    return f'"{s}"'


def _b64(data: bytes) -> str:
    return base64.standard_b64encode(bytes(data)).decode("ascii")


def _json_default(o: Any) -> Any:
    if dataclasses.is_dataclass(o) and not isinstance(o, type):
        return dataclasses.asdict(o)
    if isinstance(o, np.generic):
        return o.item()
    if isinstance(o, datetime):
        return o.isoformat()
    raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


def serialize_value(v: Any, column_type: ColumnType | str) -> str:
    """
    Encode `v` as the ILP text of `column_type`.

    Raises TypeMismatchError when the runtime kind of `v` is not accepted by the
    column type (unsupported column types never accept anything).
    """
    try:
        ct = ColumnType(str(column_type))
    except ValueError:
        raise TypeMismatchError(_kind(v), str(column_type), detail="unknown column type") from None

    if ct is ColumnType.BOOLEAN:
        if _is_bool(v):
            return "true" if bool(v) else "false"

    elif ct is ColumnType.BYTE:
        n = _as_int(v, ct)
        if n is not None:
            return f"{n}"

    elif ct in (ColumnType.SHORT, ColumnType.INT, ColumnType.LONG):
        n = _as_int(v, ct)
        if n is not None:
            return f"{n}i"

    elif ct is ColumnType.CHAR:
        if isinstance(v, str) and len(v) == 1:
            return v

    elif ct is ColumnType.FLOAT:
        if isinstance(v, (np.float32, float)) and not isinstance(v, np.float64):
            return f"{float(v):f}"

    elif ct is ColumnType.DOUBLE:
        if isinstance(v, (float, np.float32, np.float64)):
            return f"{float(v):f}"

    elif ct is ColumnType.SYMBOL:
        if isinstance(v, str):
            return escape_name(v)

    elif ct is ColumnType.STRING:
        if isinstance(v, str):
            return _quote(escape_string(v))

    elif ct is ColumnType.DATE:
        if isinstance(v, datetime):
            return f"{epoch_millis(v)}"
        n = _as_int(v, ct)
        if n is not None:
            return f"{n}"

    elif ct is ColumnType.TIMESTAMP:
        if isinstance(v, datetime):
            return f"{epoch_micros(v)}t"
        n = _as_int(v, ct)
        if n is not None:
            return f"{n}t"

    elif ct is ColumnType.BINARY:
        if isinstance(v, (bytes, bytearray, memoryview)):
            return _quote(_b64(v))
        if isinstance(v, str):
            return _quote(_b64(v.encode("utf-8")))

    elif ct is ColumnType.JSON:
        try:
            raw = json.dumps(v, separators=(",", ":"), default=_json_default, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise TypeMismatchError(_kind(v), str(ct), detail=f"could not json encode: {e}") from e
        return _quote(_b64(raw.encode("utf-8")))

    raise TypeMismatchError(_kind(v), str(ct))


def zero_value(column_type: ColumnType | str) -> Any:
    """The value committed for an absent (`None`) field that sets `commitZeroValue`."""
    ct = ColumnType(str(column_type))
    return {
        ColumnType.BOOLEAN: False,
        ColumnType.BYTE: 0,
        ColumnType.SHORT: 0,
        ColumnType.CHAR: "\x00",
        ColumnType.INT: 0,
        ColumnType.FLOAT: 0.0,
        ColumnType.SYMBOL: "",
        ColumnType.STRING: "",
        ColumnType.JSON: None,
        ColumnType.LONG: 0,
        ColumnType.DATE: 0,
        ColumnType.TIMESTAMP: 0,
        ColumnType.DOUBLE: 0.0,
        ColumnType.BINARY: b"",
    }[ct]


def is_serializable(v: Any) -> bool:
    """True if `v` is a scalar kind that some column type can encode."""
    return isinstance(
        v,
        (bool, np.bool_, int, np.integer, float, np.floating, str, bytes, bytearray, memoryview, datetime),
    )


def is_zero_value(v: Any) -> bool:
    """
    "Unset or default" classification used to skip fields on write.

    None, False, numeric zero (including -0.0), empty text/bytes/containers,
    datetime.min and dataclass instances whose fields are all zero count as zero.
    NaN is not zero.
    """
    if v is None:
        return True
    if _is_bool(v):
        return not bool(v)
    if isinstance(v, (int, float, np.integer, np.floating)):
        return v == 0
    if isinstance(v, datetime):
        return v.replace(tzinfo=None) == datetime.min
    if isinstance(v, (str, bytes, bytearray, memoryview, list, tuple, dict, set, frozenset)):
        return len(v) == 0
    if dataclasses.is_dataclass(v) and not isinstance(v, type):
        return all(is_zero_value(getattr(v, f.name)) for f in dataclasses.fields(v))
    return False
