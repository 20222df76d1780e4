from __future__ import annotations

import dataclasses
import importlib
import json
import typing
from datetime import datetime
from typing import Any

import click
import structlog

from qdbmap.errors import QdbMapError

log = structlog.get_logger()


def load_record_type(spec: str) -> type:
    """Resolve `package.module:ClassName` to a dataclass type."""
    mod_name, sep, attr = str(spec).partition(":")
    if not sep or not mod_name or not attr:
        raise click.BadParameter(f"expected MODULE:CLASS, got {spec!r}")
    try:
        mod = importlib.import_module(mod_name)
    except ImportError as e:
        raise click.BadParameter(f"cannot import {mod_name}: {e}") from e
    obj: Any = mod
    for part in attr.split("."):
        obj = getattr(obj, part, None)
        if obj is None:
            raise click.BadParameter(f"{mod_name} has no attribute {attr}")
    if not (isinstance(obj, type) and dataclasses.is_dataclass(obj)):
        raise click.BadParameter(f"{spec} is not a dataclass")
    return obj


def _blank_record(ty: type) -> Any:
    # capability methods (table_name, create_table_options) may need an instance
    try:
        return ty()
    except TypeError:
        return ty


def build_record(ty: type, values: dict[str, Any]) -> Any:
    """
    Construct a record from JSON-decoded keyword values.

    ISO strings become datetimes, dicts become embedded dataclasses and strings
    for bytes-like fields are UTF-8 encoded.
    """
    try:
        hints = typing.get_type_hints(ty)
    except Exception:
        hints = {}
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(ty):
        if f.name not in values:
            continue
        v = values[f.name]
        hint = hints.get(f.name)
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            hint = args[0]
        if isinstance(hint, type):
            if issubclass(hint, datetime) and isinstance(v, str):
                v = datetime.fromisoformat(v)
            elif dataclasses.is_dataclass(hint) and isinstance(v, dict):
                v = build_record(hint, v)
            elif issubclass(hint, (bytes, bytearray)) and isinstance(v, str):
                v = hint(v.encode("utf-8"))
        kwargs[f.name] = v
    unknown = sorted(set(values) - {f.name for f in dataclasses.fields(ty)})
    if unknown:
        raise click.BadParameter(f"unknown fields for {ty.__name__}: {unknown}")
    return ty(**kwargs)


def register(main: click.Group) -> None:
    """
    Register schema commands (`ddl`, `columns`, `line`) onto the root CLI group.
    """
    from qdbmap.model import Model

    @main.command("ddl")
    @click.argument("record")
    @click.option("--table", "table_name", default="", help="Override the table name")
    def ddl_cmd(record: str, table_name: str) -> None:
        """Print CREATE TABLE IF NOT EXISTS for RECORD (module:Class)."""
        ty = load_record_type(record)
        try:
            model = Model.from_record(_blank_record(ty), table_name=table_name or None, serialize=False)
        except QdbMapError as e:
            raise click.ClickException(str(e)) from e
        click.echo(model.create_table_statement())

    @main.command("columns")
    @click.argument("record")
    def columns_cmd(record: str) -> None:
        """Print the SELECT column list for RECORD (module:Class)."""
        ty = load_record_type(record)
        try:
            model = Model.from_record(_blank_record(ty), serialize=False)
        except QdbMapError as e:
            raise click.ClickException(str(e)) from e
        click.echo(model.columns())

    @main.command("line")
    @click.argument("record")
    @click.option("--values", "values_json", required=True, help="Field values as a JSON object")
    @click.option("--table", "table_name", default="", help="Override the table name")
    def line_cmd(record: str, values_json: str, table_name: str) -> None:
        """Print the ILP line for RECORD (module:Class) built from --values."""
        ty = load_record_type(record)
        try:
            values = json.loads(values_json)
        except ValueError as e:
            raise click.BadParameter(f"--values is not valid JSON: {e}") from e
        if not isinstance(values, dict):
            raise click.BadParameter("--values must be a JSON object")
        try:
            rec = build_record(ty, values)
            line = Model.from_record(rec, table_name=table_name or None).marshal_line()
        except (QdbMapError, TypeError, ValueError) as e:
            raise click.ClickException(str(e)) from e
        log.debug("cli.line", record=record, nbytes=len(line))
        click.echo(line.decode("utf-8"), nl=False)
