from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import pytest

from qdbmap import Bytes, CreateTableOptions, PartitionBy, qdb_field


@dataclass
class User:
    Name: str = qdb_field("Name;string", default="")
    Email: str = qdb_field("Email;symbol", default="")
    Age: int = qdb_field("Age;int", default=0)

    def table_name(self) -> str:
        return "users"


@dataclass
class Limits:
    max_age: int = qdb_field("max_age;long", default=0)
    length_max: str = qdb_field("length_max;string", default="")


@dataclass
class Account:
    ignored: str = qdb_field("-", default="scratch")
    name: str = qdb_field("name;string", default="")
    email: str = qdb_field("email;symbol;index:true", default="")
    age: int = qdb_field("age;short", default=0)
    birthday: Optional[datetime] = qdb_field("birthday;timestamp", default=None)
    ts: Optional[datetime] = qdb_field("ts;timestamp;designatedTS:true", default=None)
    body: Bytes = qdb_field("body;binary", default_factory=Bytes)
    limits: Optional[Limits] = qdb_field("limits;embedded;embeddedPrefix:lim_", default=None)

    @classmethod
    def create_table_options(cls) -> CreateTableOptions:
        return CreateTableOptions(partition_by=PartitionBy.DAY, max_uncommitted_rows=40000, commit_lag="240s")


@pytest.fixture()
def ahmad() -> User:
    return User(Name="Ahmad", Email="ahmad@x.io", Age=29)


@pytest.fixture()
def account() -> Account:
    return Account(
        name="john",
        email="john@x.io",
        age=45,
        birthday=datetime(1980, 5, 17, tzinfo=timezone.utc),
        ts=datetime(2024, 1, 2, 3, 4, 5, 678901, tzinfo=timezone.utc),
        body=Bytes(b"\x01\x02"),
        limits=Limits(max_age=4325, length_max="455"),
    )


@pytest.fixture()
def fixed_ts() -> datetime:
    return datetime(2022, 1, 1, tzinfo=timezone.utc)

