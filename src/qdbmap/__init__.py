"""
qdbmap: map annotated dataclasses onto QuestDB.

This package provides:
- `qdb` field tags (`qdb_field("name;type;opt:val")`) and their parser
- schema derivation with embedded-record flattening (`Model.from_record`)
- ILP line rendering, CREATE TABLE statements and row scanning
- a thin client for the ILP stream and PGWire (psycopg)
"""

from qdbmap.ddl import CreateTableOptions, PartitionBy
from qdbmap.errors import QdbMapError, ScanError, SchemaError, TagError, TypeMismatchError
from qdbmap.line import Line
from qdbmap.model import BoundField, Model
from qdbmap.scan import Bytes, QDBScanner, json_scan, scan_row
from qdbmap.tags import qdb_field
from qdbmap.types import ColumnType, serialize_value

__version__ = "0.1.0"

__all__ = [
    "Bytes",
    "BoundField",
    "ColumnType",
    "CreateTableOptions",
    "Line",
    "Model",
    "PartitionBy",
    "QDBScanner",
    "QdbMapError",
    "ScanError",
    "SchemaError",
    "TagError",
    "TypeMismatchError",
    "json_scan",
    "qdb_field",
    "scan_row",
    "serialize_value",
]
