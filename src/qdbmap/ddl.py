"""
CREATE TABLE rendering for record models.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .errors import SchemaError
from .types import TEXT_STORED_TYPES, ColumnType

if TYPE_CHECKING:
    from .model import Model

# Column QuestDB adds when the record has no designated timestamp.
DEFAULT_TIMESTAMP_COLUMN = "timestamp"


class PartitionBy(str, Enum):
    NONE = "NONE"
    YEAR = "YEAR"
    MONTH = "MONTH"
    DAY = "DAY"

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class CreateTableOptions:
    """
    Table creation options, returned by a record's `create_table_options()`.

    `commit_lag` is passed through verbatim (e.g. "240s").
    """

    partition_by: PartitionBy | str | None = None
    max_uncommitted_rows: int = 0
    commit_lag: str = ""

    def __post_init__(self) -> None:
        if int(self.max_uncommitted_rows) < 0:
            raise SchemaError(f"max_uncommitted_rows must be >= 0 (got {self.max_uncommitted_rows})")
        if self.partition_by is None or self.partition_by == "":
            return
        raw = str(self.partition_by).strip().upper()
        try:
            object.__setattr__(self, "partition_by", PartitionBy(raw))
        except ValueError:
            allowed = ", ".join(p.value for p in PartitionBy)
            raise SchemaError(f"invalid partition strategy {self.partition_by!r} (expected one of {allowed})") from None

    def render(self) -> str:
        """Clause appended after `timestamp(...)`; empty when nothing is set."""
        out = ""
        if self.partition_by:
            out += f"PARTITION BY {self.partition_by} "
        with_opts: list[str] = []
        if self.max_uncommitted_rows:
            with_opts.append(f"maxUncommittedRows={int(self.max_uncommitted_rows)}")
        if self.commit_lag:
            with_opts.append(f"commitLag={self.commit_lag}")
        if with_opts:
            out += "WITH " + ", ".join(with_opts) + " "
        return out


def column_declaration(column_type: ColumnType) -> str:
    # binary and json travel as base64 text, so they are stored as strings
    if column_type in TEXT_STORED_TYPES:
        return ColumnType.STRING.value
    return ColumnType(column_type).value


def create_table_statement(model: Model) -> str:
    """
    `CREATE TABLE IF NOT EXISTS` statement consistent with the model's ILP line.

    Without a designated timestamp field, an implicit `"timestamp" timestamp`
    column is declared and used as the designated timestamp.
    """
    cols = [f'"{f.column}" {column_declaration(f.column_type)}' for f in model.fields]
    if model.designated_ts is None:
        cols.append(f'"{DEFAULT_TIMESTAMP_COLUMN}" timestamp')

    out = f'CREATE TABLE IF NOT EXISTS "{model.table_name}" ( '
    out += ", ".join(cols)
    out += " ) "

    if model.index_fields:
        out += ", " + ", ".join(f"index({f.column})" for f in model.index_fields) + " "

    ts_column = model.designated_ts.column if model.designated_ts is not None else DEFAULT_TIMESTAMP_COLUMN
    out += f"timestamp({ts_column}) "

    if model.create_table_options is not None:
        out += model.create_table_options.render()

    return out + ";"


def select_columns(model: Model) -> str:
    """`col_a, col_b, ...` in field order, pairing with `Model.destinations()`."""
    return ", ".join(f.column for f in model.fields)
