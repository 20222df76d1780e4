"""
ILP (InfluxDB Line Protocol) message rendering.

    <table>[,<symbol>=<value>...][ <column>=<value>...][ <timestamp>]\\n

Empty sections are left out entirely, separators included.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

from .types import ColumnType, escape_name

if TYPE_CHECKING:
    from .model import Model

Pairs = Union[Mapping[str, str], Iterable[tuple[str, str]]]


def _pairs(items: Pairs) -> list[tuple[str, str]]:
    if isinstance(items, Mapping):
        return [(str(k), str(v)) for k, v in items.items()]
    return [(str(k), str(v)) for k, v in items]


def _join(pairs: list[tuple[str, str]]) -> str:
    return ",".join(f"{escape_name(k)}={v}" for k, v in pairs)


@dataclass
class Line:
    """
    One ILP message.

    `symbols` and `columns` hold already encoded values keyed by column name,
    in emission order. `timestamp` is the bare designated timestamp token.
    """

    table: str
    symbols: list[tuple[str, str]] = field(default_factory=list)
    columns: list[tuple[str, str]] = field(default_factory=list)
    timestamp: str | None = None

    @classmethod
    def of(cls, table: str, symbols: Pairs = (), columns: Pairs = (), timestamp: int | str | None = None) -> Line:
        ts = None if timestamp is None or timestamp == "" else str(timestamp)
        return cls(table=table, symbols=_pairs(symbols), columns=_pairs(columns), timestamp=ts)

    def __str__(self) -> str:
        out = escape_name(self.table)
        if self.symbols:
            out += "," + _join(self.symbols)
        if self.columns:
            out += " " + _join(self.columns)
        if self.timestamp:
            out += " " + self.timestamp
        return out + "\n"

    def to_bytes(self) -> bytes:
        return str(self).encode("utf-8")


def build_line(model: Model) -> Line:
    """
    Render a serialized model into a Line.

    The designated timestamp field never appears among the columns; when set it
    becomes the trailing token (epoch micros without the `t` marker).
    """
    symbols: list[tuple[str, str]] = []
    columns: list[tuple[str, str]] = []
    for f in model.fields:
        if not f.emitted or f.options.designated_ts:
            continue
        if f.column_type == ColumnType.SYMBOL:
            symbols.append((f.column, f.value_serialized))
        else:
            columns.append((f.column, f.value_serialized))

    timestamp = None
    ts = model.designated_ts
    if ts is not None and not ts.is_zero and ts.value_serialized:
        timestamp = ts.value_serialized.rstrip("t")

    return Line(table=model.table_name, symbols=symbols, columns=columns, timestamp=timestamp)
