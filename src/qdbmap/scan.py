"""
Binding query rows back onto records.

`Model.destinations()` yields one destination per field, in the same order as
`Model.columns()`, so a `SELECT <model.columns()> FROM ...` row can be scanned
positionally. Field types that know how to decode themselves implement
`qdb_scan(self, src)`; their destinations are wrapped in a `ScanAdapter`.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .errors import ScanError

if TYPE_CHECKING:
    from .model import BoundField, Model


@runtime_checkable
class QDBScanner(Protocol):
    def qdb_scan(self, src: Any) -> None: ...


def has_custom_scan(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, QDBScanner)


class FieldDestination:
    """Writes a fetched column value onto the record attribute at `path`."""

    def __init__(self, record: Any, path: str, owner_types: tuple[type, ...] = ()) -> None:
        self.record = record
        self.path = path
        self.owner_types = owner_types

    def _owner(self) -> Any:
        # walk to the embedded record holding the attribute, creating missing ones
        obj = self.record
        parts = self.path.split(".")
        for part, typ in zip(parts[:-1], self.owner_types):
            child = getattr(obj, part, None)
            if child is None:
                try:
                    child = typ()
                except TypeError as e:
                    raise ScanError(f"{self.path}: cannot create embedded {typ.__name__}: {e}") from e
                setattr(obj, part, child)
            obj = child
        return obj

    @property
    def attr(self) -> str:
        return self.path.rsplit(".", 1)[-1]

    def get(self) -> Any:
        return getattr(self._owner(), self.attr, None)

    def set(self, value: Any) -> None:
        setattr(self._owner(), self.attr, value)

    def scan(self, src: Any) -> None:
        self.set(src)


class ScanAdapter:
    """Proxies a fetched value to the field object's own `qdb_scan`."""

    def __init__(self, dest: FieldDestination, factory: type) -> None:
        self.dest = dest
        self.factory = factory

    def scan(self, src: Any) -> None:
        target = self.dest.get()
        if not isinstance(target, self.factory):
            target = self.factory()
        try:
            target.qdb_scan(src)
        except ScanError:
            raise
        except Exception as e:
            raise ScanError(f"{self.dest.path}: {e}") from e
        self.dest.set(target)


def make_destination(record: Any, f: BoundField) -> FieldDestination | ScanAdapter:
    dest = FieldDestination(record, f.name, f.owner_types)
    if has_custom_scan(f.annotation):
        return ScanAdapter(dest, f.annotation)
    return dest


def make_destinations(model: Model) -> list[FieldDestination | ScanAdapter]:
    if model.record is None:
        raise ScanError(f"cannot scan into {model.record_type.__name__}: a record instance is required")
    return [make_destination(model.record, f) for f in model.fields]


def scan_row(row: Any, dest: Any) -> Any:
    """
    Populate record `dest` from one result row and return it.

    `row` is either a sequence of column values (a psycopg row tuple) or an
    object exposing `scan(*destinations)`. The row's columns must follow
    `Model.columns()` order.
    """
    from .model import Model

    model = Model.from_record(dest, serialize=False)
    dests = model.destinations()

    scan = getattr(row, "scan", None)
    if callable(scan):
        scan(*dests)
        return dest

    values = list(row)
    if len(values) != len(dests):
        raise ScanError(f"row has {len(values)} columns but {model.record_type.__name__} maps {len(dests)}")
    for d, v in zip(dests, values):
        d.scan(v)
    return dest


def _b64decode(src: str | bytes) -> bytes:
    try:
        return base64.b64decode(src, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ScanError(f"could not base64 decode src: {e}") from e


class Bytes(bytearray):
    """
    Binary field type.

    Written as base64 text (ILP cannot carry raw bytes) and decoded back from
    that text when scanned.
    """

    def qdb_scan(self, src: Any) -> None:
        if isinstance(src, str):
            self[:] = _b64decode(src)
        elif isinstance(src, (bytes, bytearray, memoryview)):
            self[:] = bytes(src)
        elif src is None:
            self.clear()
        else:
            raise ScanError(f"{type(src).__name__} cannot be scanned into Bytes")


def json_scan(src: Any) -> Any:
    """Decode a stored json column (base64 encoded JSON text)."""
    if isinstance(src, (bytes, bytearray, memoryview)):
        src = bytes(src)
    elif not isinstance(src, str):
        raise ScanError(f"cannot json unmarshal type {type(src).__name__}")
    raw = _b64decode(src)
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ScanError(f"could not json decode src: {e}") from e
