"""
`qdb` field annotations.

A record field is mapped by attaching a tag to its dataclass metadata:

    name: str = qdb_field("name;string")
    ts: datetime = qdb_field("ts;timestamp;designatedTS:true")
    opts: Options = qdb_field("opts;embedded;embeddedPrefix:opts_")
    scratch: str = qdb_field("-")

Grammar: `<column>;<type>[;key:value...]`, or the sentinel `-` to leave the
field out of the schema.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any

from .errors import TagError
from .types import EMBEDDED, ColumnType, is_supported_type, is_unsupported_type

TAG_KEY = "qdb"
IGNORE_TAG = "-"

OPT_EMBEDDED_PREFIX = "embeddedPrefix"
OPT_DESIGNATED_TS = "designatedTS"
OPT_COMMIT_ZERO_VALUE = "commitZeroValue"
OPT_INDEX = "index"


@dataclass(frozen=True)
class TagOptions:
    embedded_prefix: str = ""
    designated_ts: bool = False
    index: bool = False
    commit_zero_value: bool = False


@dataclass(frozen=True)
class FieldDirective:
    """Parsed form of one field's tag."""

    column: str
    column_type: ColumnType | str
    options: TagOptions = TagOptions()

    @property
    def is_embedded(self) -> bool:
        return self.column_type == EMBEDDED


def qdb_field(tag: str, **kwargs: Any) -> Any:
    """`dataclasses.field` carrying a `qdb` tag in its metadata."""
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[TAG_KEY] = tag
    return dataclasses.field(metadata=metadata, **kwargs)


def field_tag(f: dataclasses.Field) -> str:
    return str(f.metadata.get(TAG_KEY, "") or "")


def ensure_options_are_valid(opts: list[str]) -> None:
    """Each option segment must be a single `key:value` pair."""
    for opt in opts:
        if len(opt.split(":")) != 2:
            raise ValueError(f"'{opt}' is not valid option")


def get_option(opts: list[str], key: str) -> str:
    """Value of option `key`, or "" if the tag does not set it."""
    for opt in opts:
        name, value = opt.split(":")
        if name == key:
            return value
    return ""


def make_tag_options(column_type: str, opts: list[str], *, field: str = "") -> TagOptions:
    try:
        ensure_options_are_valid(opts)
    except ValueError as e:
        raise TagError(field, f"invalid tag: {e}") from None

    designated_ts = get_option(opts, OPT_DESIGNATED_TS) == "true"
    if designated_ts and column_type != ColumnType.TIMESTAMP.value:
        raise TagError(field, "type must be timestamp if 'designatedTS:true' option set")

    return TagOptions(
        embedded_prefix=get_option(opts, OPT_EMBEDDED_PREFIX),
        designated_ts=designated_ts,
        index=get_option(opts, OPT_INDEX) == "true",
        commit_zero_value=get_option(opts, OPT_COMMIT_ZERO_VALUE) == "true",
    )


def parse_tag(tag: str, *, field: str = "") -> FieldDirective | None:
    """
    Parse a tag into a FieldDirective.

    Returns None for the ignore sentinel. `field` is the dotted field path used
    in error messages.
    """
    if tag == IGNORE_TAG:
        return None

    props = str(tag or "").split(";")
    if len(props) < 2:
        raise TagError(
            field,
            f"invalid tag length (expected at least 2 semicolon delimited items but got {len(props)})",
        )

    column, type_name = props[0], props[1]
    opts = make_tag_options(type_name, props[2:], field=field)

    if type_name == EMBEDDED:
        if not opts.embedded_prefix:
            raise TagError(field, f"'{OPT_EMBEDDED_PREFIX}' is required if type is embedded")
        return FieldDirective(column=column, column_type=EMBEDDED, options=opts)

    if not is_supported_type(type_name):
        reason = "unsupported qdb type" if is_unsupported_type(type_name) else "unknown qdb type"
        raise TagError(field, f"{reason} {type_name}")

    return FieldDirective(column=column, column_type=ColumnType(type_name), options=opts)
