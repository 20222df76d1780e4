"""
Error taxonomy for the mapping engine.

All mapping errors derive from `QdbMapError` (a `ValueError`), so callers can
catch the whole family at once. Transport failures (socket/psycopg) are never
wrapped and propagate as raised by the driver.
"""

from __future__ import annotations


class QdbMapError(ValueError):
    """Base class for record mapping errors."""


class TagError(QdbMapError):
    """Malformed `qdb` annotation, missing required option or unsupported type."""

    def __init__(self, field: str, message: str) -> None:
        self.field = str(field)
        super().__init__(f"{field}: {message}" if field else message)


class SchemaError(QdbMapError):
    """Cross-field schema invariant violated (e.g. two designated timestamps)."""


class TypeMismatchError(QdbMapError):
    """A runtime value kind is not accepted by the declared column type."""

    def __init__(self, value_kind: str, column_type: str, *, field: str = "", detail: str = "") -> None:
        self.field = str(field)
        self.value_kind = str(value_kind)
        self.column_type = str(column_type)
        self.detail = str(detail)
        msg = f"type {value_kind} is not compatible with {column_type}"
        if detail:
            msg = f"{msg} ({detail})"
        if field:
            msg = f"{field}: {msg}"
        super().__init__(msg)

    def with_field(self, field: str) -> TypeMismatchError:
        return TypeMismatchError(self.value_kind, self.column_type, field=field, detail=self.detail)


class ScanError(QdbMapError):
    """A query row could not be bound onto a record."""
