from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pytest

from qdbmap import CreateTableOptions, Model, qdb_field
from qdbmap.errors import SchemaError, TagError, TypeMismatchError
from qdbmap.model import default_table_name, to_snake_case
from qdbmap.types import ColumnType


@dataclass
class Node:
    name: str = qdb_field("name;string", default="")
    child: Optional[Node] = qdb_field("child;embedded;embeddedPrefix:c_", default=None)


@dataclass
class Left:
    right: Optional[Right] = qdb_field("right;embedded;embeddedPrefix:r_", default=None)


@dataclass
class Right:
    left: Optional[Left] = qdb_field("left;embedded;embeddedPrefix:l_", default=None)


@dataclass
class Counter:
    name: str = qdb_field("name;symbol", default="")
    count: int = qdb_field("count;long;commitZeroValue:true", default=0)
    note: Optional[str] = qdb_field("note;string;commitZeroValue:true", default=None)


@dataclass
class TwoStamps:
    a: Optional[datetime] = qdb_field("a;timestamp;designatedTS:true", default=None)
    b: Optional[datetime] = qdb_field("b;timestamp;designatedTS:true", default=None)


@dataclass
class Untagged:
    name: str = ""


@dataclass
class Inner:
    depth: int = qdb_field("depth;int", default=0)


@dataclass
class Middle:
    inner: Optional[Inner] = qdb_field("inner;embedded;embeddedPrefix:in_", default=None)
    label: str = qdb_field("label;string", default="")


@dataclass
class Outer:
    first: str = qdb_field("first;string", default="")
    middle: Optional[Middle] = qdb_field("middle;embedded;embeddedPrefix:mid_", default=None)
    last: str = qdb_field("last;string", default="")


def test_user_line_and_table(ahmad) -> None:
    model = Model.from_record(ahmad)
    assert model.table_name == "users"
    assert model.marshal_line() == b'users,Email=ahmad@x.io Name="Ahmad",Age=29i\n'
    assert [f.column_type for f in model.fields] == [ColumnType.STRING, ColumnType.SYMBOL, ColumnType.INT]


def test_account_line_flattens_embedded_and_trails_designated_ts(account) -> None:
    model = Model.from_record(account)
    assert model.table_name == "accounts"
    assert [f.name for f in model.fields] == [
        "name",
        "email",
        "age",
        "birthday",
        "ts",
        "body",
        "limits.max_age",
        "limits.length_max",
    ]
    assert model.column_names()[-2:] == ["lim_max_age", "lim_length_max"]
    assert model.designated_ts is not None and model.designated_ts.name == "ts"
    assert [f.column for f in model.index_fields] == ["email"]
    assert model.marshal_line() == (
        b'accounts,email=john@x.io name="john",age=45i,birthday=327369600000000t,body="AQI=",'
        b'lim_max_age=4325i,lim_length_max="455" 1704164645678901\n'
    )


def test_zero_fields_are_skipped(ahmad) -> None:
    ahmad.Email = ""
    ahmad.Age = 0
    assert Model.from_record(ahmad).marshal_line() == b'users Name="Ahmad"\n'


def test_unset_designated_ts_and_embedded(account) -> None:
    account.ts = None
    account.limits = None
    line = Model.from_record(account).marshal_line().decode()
    assert line.endswith('body="AQI="\n')
    assert "lim_" not in line


def test_commit_zero_value_emits_zero_and_none() -> None:
    model = Model.from_record(Counter(name="c"))
    assert model.marshal_line() == b'counters,name=c count=0i,note=""\n'
    count = model.fields[1]
    assert count.is_zero and count.emitted


def test_commit_zero_value_on_empty_char() -> None:
    @dataclass
    class Grade:
        letter: str = qdb_field("letter;char;commitZeroValue:true", default="")
        mark: Optional[str] = qdb_field("mark;char;commitZeroValue:true", default=None)

    # the zero char is NUL, as a zero rune renders
    assert Model.from_record(Grade()).marshal_line() == b"grades letter=\x00,mark=\x00\n"
    assert Model.from_record(Grade(letter="A")).marshal_line() == b"grades letter=A,mark=\x00\n"


def test_embedded_fields_splice_in_place() -> None:
    model = Model.from_record(Outer(first="a", middle=Middle(inner=Inner(3), label="m"), last="z"))
    assert model.column_names() == ["first", "mid_in_depth", "mid_label", "last"]
    assert [f.owner_types for f in model.fields] == [(), (Middle, Inner), (Middle,), ()]
    assert model.marshal_line() == b'outers first="a",mid_in_depth=3i,mid_label="m",last="z"\n'


def test_class_only_model_serves_ddl(account) -> None:
    model = Model.from_record(type(account), serialize=False)
    assert model.record is None
    assert all(f.value is None and f.value_serialized == "" for f in model.fields)
    assert model.create_table_statement().startswith('CREATE TABLE IF NOT EXISTS "accounts" (')


def test_instance_capability_needs_instance(ahmad) -> None:
    with pytest.raises(SchemaError, match=r"User.table_name\(\) needs a record instance"):
        Model.from_record(type(ahmad))


def test_table_name_override(ahmad) -> None:
    model = Model.from_record(ahmad, table_name="people")
    assert model.marshal_line().startswith(b"people,")


def test_bad_create_table_options_return_type() -> None:
    @dataclass
    class Bad:
        a: int = qdb_field("a;int", default=0)

        def create_table_options(self):
            return {"partition_by": "DAY"}

    with pytest.raises(SchemaError, match="must return CreateTableOptions"):
        Model.from_record(Bad())


def test_create_table_options_from_instance() -> None:
    @dataclass
    class Good:
        a: int = qdb_field("a;int", default=0)

        def create_table_options(self) -> CreateTableOptions:
            return CreateTableOptions(partition_by="month")

    assert Model.from_record(Good()).create_table_options == CreateTableOptions(partition_by="MONTH")


def test_multiple_designated_timestamps() -> None:
    with pytest.raises(SchemaError, match=r"multiple designated timestamp fields found \(a, b\)"):
        Model.from_record(TwoStamps())


def test_recursive_embedding_is_rejected() -> None:
    with pytest.raises(SchemaError, match="recursive embedding of Node"):
        Model.from_record(Node(name="root"))
    with pytest.raises(SchemaError, match="recursive embedding"):
        Model.from_record(Left())


def test_non_dataclass_records_are_rejected() -> None:
    class Plain:
        pass

    with pytest.raises(SchemaError, match="only dataclasses allowed"):
        Model.from_record(Plain())
    with pytest.raises(SchemaError):
        Model.from_record({"a": 1})


def test_embedded_field_must_be_dataclass() -> None:
    @dataclass
    class Holder:
        inner: int = qdb_field("inner;embedded;embeddedPrefix:x_", default=0)

    with pytest.raises(TagError, match="embedded field must be a dataclass"):
        Model.from_record(Holder())


def test_local_embedded_types_resolve_per_field() -> None:
    @dataclass
    class Wheel:
        size: int = qdb_field("size;int", default=0)

    @dataclass
    class Car:
        model: str = qdb_field("model;string", default="")
        front: Optional[Wheel] = qdb_field("front;embedded;embeddedPrefix:front_", default_factory=Wheel)

    # the embedded annotation names a local class; the factory identifies it
    car = Car(model="t", front=None)
    model = Model.from_record(car)
    assert model.column_names() == ["model", "front_size"]
    assert model.fields[0].annotation is str
    assert model.marshal_line() == b'cars model="t"\n'

    assert Model.from_record(Car(front=Wheel(17))).marshal_line() == b"cars front_size=17i\n"


def test_unresolvable_embedded_type_is_a_clear_tag_error() -> None:
    @dataclass
    class Seat:
        rows: int = qdb_field("rows;int", default=0)

    @dataclass
    class Bus:
        seat: Optional[Seat] = qdb_field("seat;embedded;embeddedPrefix:seat_", default=None)

    with pytest.raises(TagError, match="seat: cannot resolve embedded type 'Optional\\[Seat\\]'"):
        Model.from_record(Bus())
    # an instance value identifies the type
    assert Model.from_record(Bus(seat=Seat(2))).column_names() == ["seat_rows"]


def test_untagged_field_is_a_tag_error() -> None:
    with pytest.raises(TagError, match="name: invalid tag length"):
        Model.from_record(Untagged())


def test_type_mismatch_names_the_field(ahmad, account) -> None:
    ahmad.Age = "old"
    with pytest.raises(TypeMismatchError) as ei:
        Model.from_record(ahmad)
    assert ei.value.field == "Age"
    assert str(ei.value) == "Age: type str is not compatible with int"

    account.limits.max_age = 1.5
    with pytest.raises(TypeMismatchError, match="limits.max_age: type float is not compatible with long"):
        Model.from_record(account)


def test_serialize_false_skips_codec(ahmad) -> None:
    ahmad.Age = "old"
    model = Model.from_record(ahmad, serialize=False)
    assert model.fields[2].value == "old"
    with pytest.raises(TypeMismatchError):
        model.line()


def test_models_are_rederived_each_call(ahmad) -> None:
    first = Model.from_record(ahmad)
    ahmad.Age = 30
    second = Model.from_record(ahmad)
    assert first.fields is not second.fields
    assert b"Age=29i" in first.marshal_line()
    assert b"Age=30i" in second.marshal_line()


def test_snake_case_table_names() -> None:
    assert to_snake_case("AccountInfo") == "account_info"
    assert to_snake_case("HTTPRequest") == "http_request"
    assert to_snake_case("user") == "user"
    assert default_table_name(Counter) == "counters"
