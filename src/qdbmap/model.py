"""
Record model: schema derivation and value binding for `qdb` tagged dataclasses.

`Model.from_record()` walks the dataclass fields in declaration order, parses
each field's tag, flattens embedded sub-records depth first and binds the
current instance values. Nothing is cached: every call re-derives the schema.
"""

from __future__ import annotations

import dataclasses
import inspect
import re
import sys
import types
import typing
from dataclasses import dataclass
from typing import Any, Union

import structlog

from .ddl import CreateTableOptions, create_table_statement, select_columns
from .errors import SchemaError, TagError, TypeMismatchError
from .line import Line, build_line
from .tags import TagOptions, field_tag, parse_tag
from .types import ColumnType, is_zero_value, serialize_value, zero_value

log = structlog.get_logger()

_MATCH_FIRST_CAP = re.compile(r"(.)([A-Z][a-z]+)")
_MATCH_ALL_CAP = re.compile(r"([a-z0-9])([A-Z])")


def to_snake_case(s: str) -> str:
    snake = _MATCH_FIRST_CAP.sub(r"\1_\2", s)
    snake = _MATCH_ALL_CAP.sub(r"\1_\2", snake)
    return snake.lower()


@dataclass
class BoundField:
    """One flattened column of a record, bound to the instance value."""

    name: str
    column: str
    column_type: ColumnType
    options: TagOptions
    annotation: Any = None
    # dataclass types of the embedded records enclosing this field, outermost first
    owner_types: tuple[type, ...] = ()
    value: Any = None
    is_zero: bool = False
    value_serialized: str = ""

    @property
    def emitted(self) -> bool:
        """Whether the field takes part in the ILP line."""
        return (not self.is_zero) or self.options.commit_zero_value


def _record_type(record: Any) -> type:
    ty = record if isinstance(record, type) else type(record)
    if not dataclasses.is_dataclass(ty):
        raise SchemaError(f"only dataclasses allowed (got {ty.__name__})")
    return ty


def _unwrap_optional(tp: Any) -> Any:
    origin = typing.get_origin(tp)
    union_types: tuple[Any, ...] = (Union,)
    if hasattr(types, "UnionType"):
        union_types += (types.UnionType,)
    if origin in union_types:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def _resolve_annotation(tp: Any, globalns: dict[str, Any], localns: dict[str, Any]) -> Any:
    if not isinstance(tp, str):
        return tp
    try:
        return eval(tp, globalns, localns)
    except Exception:
        return tp


def _type_hints(ty: type) -> dict[str, Any]:
    """
    Resolved field annotations of dataclass `ty`.

    Fields are resolved one by one when the class as a whole cannot be, so an
    unresolvable annotation (a local type, a TYPE_CHECKING-only import) stays a
    string without hiding the types of the other fields.
    """
    try:
        return typing.get_type_hints(ty)
    except Exception:
        pass
    module = sys.modules.get(ty.__module__)
    globalns = dict(vars(module)) if module is not None else {}
    localns = dict(vars(ty))
    localns.setdefault(ty.__name__, ty)
    return {f.name: _resolve_annotation(f.type, globalns, localns) for f in dataclasses.fields(ty)}


def _embedded_type(f: dataclasses.Field, annotation: Any, value: Any) -> Any:
    if isinstance(annotation, type):
        return annotation
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return type(value)
    factory = f.default_factory
    if isinstance(factory, type) and dataclasses.is_dataclass(factory):
        return factory
    return annotation


def build_fields(
    ty: type,
    instance: Any = None,
    *,
    path_prefix: str = "",
    column_prefix: str = "",
    owner_types: tuple[type, ...] = (),
) -> list[BoundField]:
    """
    Flatten the tagged fields of dataclass `ty` (and its embedded records).

    Embedded fields contribute `<field>.<sub>` names and `<prefix><sub column>`
    columns, spliced in place. A dataclass type that embeds itself, directly or
    through another record, is rejected.
    """
    hints = _type_hints(ty)
    out: list[BoundField] = []

    for f in dataclasses.fields(ty):
        path = path_prefix + f.name
        directive = parse_tag(field_tag(f), field=path)
        if directive is None:
            continue

        annotation = _unwrap_optional(hints.get(f.name, f.type))
        value = getattr(instance, f.name, None) if instance is not None else None

        if directive.is_embedded:
            sub_type = _embedded_type(f, annotation, value)
            if isinstance(sub_type, str):
                raise TagError(
                    path,
                    f"cannot resolve embedded type {sub_type!r} "
                    "(declare it at module level or give the field a default_factory)",
                )
            if not (isinstance(sub_type, type) and dataclasses.is_dataclass(sub_type)):
                raise TagError(path, f"embedded field must be a dataclass (got {sub_type!r})")
            if sub_type is ty or sub_type in owner_types:
                raise SchemaError(f"{path}: recursive embedding of {sub_type.__name__}")
            out.extend(
                build_fields(
                    sub_type,
                    value,
                    path_prefix=path + ".",
                    column_prefix=column_prefix + directive.options.embedded_prefix,
                    owner_types=owner_types + (sub_type,),
                )
            )
            continue

        out.append(
            BoundField(
                name=path,
                column=column_prefix + directive.column,
                column_type=ColumnType(directive.column_type),
                options=directive.options,
                annotation=annotation,
                owner_types=owner_types,
                value=value,
            )
        )
    return out


def _call_capability(record: Any, ty: type, name: str) -> Any:
    """
    Call an optional capability method (`table_name`, `create_table_options`).

    Instance methods need an instance; class/static methods also work when
    only the record type is given. Returns None if the type lacks it.
    """
    static = inspect.getattr_static(ty, name, None)
    if isinstance(static, (classmethod, staticmethod)):
        return getattr(ty, name)()
    if not callable(static):
        return None
    if not isinstance(record, type):
        return getattr(record, name)()
    raise SchemaError(f"{ty.__name__}.{name}() needs a record instance (or declare it as a classmethod)")


def default_table_name(ty: type) -> str:
    return f"{to_snake_case(ty.__name__)}s"


class Model:
    """
    Schema of a record type bound to one record instance.

    Built with `Model.from_record(record)`; `record` may also be the dataclass
    itself, in which case every field is unset (useful for DDL and column lists).
    """

    def __init__(
        self,
        *,
        table_name: str,
        fields: list[BoundField],
        record_type: type,
        record: Any = None,
        create_table_options: CreateTableOptions | None = None,
    ) -> None:
        self.table_name = table_name
        self.fields = fields
        self.record_type = record_type
        self.record = record
        self.create_table_options = create_table_options
        self.designated_ts: BoundField | None = None
        self.index_fields: list[BoundField] = []

        for f in fields:
            if f.options.designated_ts:
                if self.designated_ts is not None:
                    raise SchemaError(
                        f"multiple designated timestamp fields found ({self.designated_ts.name}, {f.name})"
                    )
                self.designated_ts = f
            if f.options.index:
                self.index_fields.append(f)

    @classmethod
    def from_record(cls, record: Any, *, table_name: str | None = None, serialize: bool = True) -> Model:
        ty = _record_type(record)
        instance = None if isinstance(record, type) else record

        name = table_name or _call_capability(record, ty, "table_name") or default_table_name(ty)
        opts = _call_capability(record, ty, "create_table_options")
        if opts is not None and not isinstance(opts, CreateTableOptions):
            raise SchemaError(
                f"{ty.__name__}.create_table_options() must return CreateTableOptions (got {type(opts).__name__})"
            )

        fields = build_fields(ty, instance)
        model = cls(
            table_name=str(name),
            fields=fields,
            record_type=ty,
            record=instance,
            create_table_options=opts,
        )
        if serialize:
            model.serialize()
        log.debug("model.built", record_type=ty.__name__, table=model.table_name, fields=len(fields))
        return model

    def serialize(self) -> None:
        """
        Classify zero values and fill in `value_serialized` for emitted fields.

        Fails on the first field whose value kind the column type rejects. A
        zero value the column type cannot encode as is (None, "" for char)
        commits the column type's own zero value.
        """
        for f in self.fields:
            f.is_zero = is_zero_value(f.value)
            f.value_serialized = ""
            if not f.emitted:
                continue
            value = zero_value(f.column_type) if f.value is None else f.value
            try:
                f.value_serialized = serialize_value(value, f.column_type)
            except TypeMismatchError as e:
                if not f.is_zero:
                    raise e.with_field(f.name) from None
                f.value_serialized = serialize_value(zero_value(f.column_type), f.column_type)

    def column_names(self) -> list[str]:
        return [f.column for f in self.fields]

    def columns(self) -> str:
        """Comma separated column list for SELECT statements, in field order."""
        return select_columns(self)

    def line(self) -> Line:
        self.serialize()
        return build_line(self)

    def marshal_line(self) -> bytes:
        """ILP message for the bound record (one `\\n` terminated line)."""
        return self.line().to_bytes()

    def create_table_statement(self) -> str:
        return create_table_statement(self)

    def destinations(self) -> list[Any]:
        from .scan import make_destinations

        return make_destinations(self)

    def __repr__(self) -> str:
        return f"Model(table_name={self.table_name!r}, fields={[f.name for f in self.fields]!r})"
