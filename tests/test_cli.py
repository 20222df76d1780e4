from __future__ import annotations

import json
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from qdbmap.cli import main

RECORDS = textwrap.dedent(
    """
    from __future__ import annotations

    from dataclasses import dataclass
    from datetime import datetime
    from typing import Optional

    from qdbmap import Bytes, CreateTableOptions, qdb_field


    @dataclass
    class Size:
        w: int = qdb_field("w;int", default=0)
        h: int = qdb_field("h;int", default=0)


    @dataclass
    class Photo:
        owner: str = qdb_field("owner;symbol;index:true", default="")
        title: str = qdb_field("title;string", default="")
        data: Bytes = qdb_field("data;binary", default_factory=Bytes)
        size: Optional[Size] = qdb_field("size;embedded;embeddedPrefix:size_", default=None)
        taken: Optional[datetime] = qdb_field("taken;timestamp;designatedTS:true", default=None)

        @classmethod
        def create_table_options(cls) -> CreateTableOptions:
            return CreateTableOptions(partition_by="month")


    @dataclass
    class Broken:
        a: int = qdb_field("a;geohash", default=0)


    class NotARecord:
        pass
    """
)


@pytest.fixture()
def records(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> str:
    (tmp_path / "cli_records.py").write_text(RECORDS)
    monkeypatch.syspath_prepend(str(tmp_path))
    return "cli_records"


def test_cli_help():
    runner = CliRunner()
    res = runner.invoke(main, ["--help"])
    assert res.exit_code == 0
    assert "qdbmap" in res.output
    for cmd in ("ddl", "columns", "line", "db"):
        assert cmd in res.output


def test_cli_ddl(records: str) -> None:
    res = CliRunner().invoke(main, ["ddl", f"{records}:Photo"])
    assert res.exit_code == 0, res.output
    assert res.stdout == (
        'CREATE TABLE IF NOT EXISTS "photos" ( "owner" symbol, "title" string, "data" string, '
        '"size_w" int, "size_h" int, "taken" timestamp ) , index(owner) timestamp(taken) PARTITION BY MONTH ;\n'
    )


def test_cli_ddl_table_override(records: str) -> None:
    res = CliRunner().invoke(main, ["ddl", f"{records}:Photo", "--table", "pics"])
    assert res.exit_code == 0, res.output
    assert res.output.startswith('CREATE TABLE IF NOT EXISTS "pics" (')


def test_cli_columns(records: str) -> None:
    res = CliRunner().invoke(main, ["columns", f"{records}:Photo"])
    assert res.exit_code == 0, res.output
    assert res.stdout == "owner, title, data, size_w, size_h, taken\n"


def test_cli_line(records: str) -> None:
    values = {
        "owner": "ann",
        "title": "sea view",
        "data": "hi",
        "size": {"w": 640, "h": 480},
        "taken": "2022-01-01T00:00:00+00:00",
    }
    res = CliRunner().invoke(main, ["line", f"{records}:Photo", "--values", json.dumps(values)])
    assert res.exit_code == 0, res.output
    assert res.stdout == 'photos,owner=ann title="sea view",data="aGk=",size_w=640i,size_h=480i 1640995200000000\n'


def test_cli_line_reports_mapping_errors(records: str) -> None:
    res = CliRunner().invoke(main, ["line", f"{records}:Photo", "--values", '{"size": {"w": "wide"}}'])
    assert res.exit_code != 0
    assert "size.w: type str is not compatible with int" in res.output

    res = CliRunner().invoke(main, ["line", f"{records}:Photo", "--values", '{"colour": "red"}'])
    assert res.exit_code != 0
    assert "unknown fields for Photo" in res.output

    res = CliRunner().invoke(main, ["line", f"{records}:Photo", "--values", "[1]"])
    assert res.exit_code != 0
    assert "must be a JSON object" in res.output


def test_cli_bad_records(records: str) -> None:
    res = CliRunner().invoke(main, ["ddl", f"{records}:Broken"])
    assert res.exit_code != 0
    assert "unsupported qdb type geohash" in res.output

    res = CliRunner().invoke(main, ["ddl", f"{records}:NotARecord"])
    assert res.exit_code != 0
    assert "is not a dataclass" in res.output

    res = CliRunner().invoke(main, ["columns", "no_such_module_xyz:Thing"])
    assert res.exit_code != 0
    assert "cannot import no_such_module_xyz" in res.output

    res = CliRunner().invoke(main, ["columns", "missing_colon"])
    assert res.exit_code != 0
    assert "expected MODULE:CLASS" in res.output


def test_cli_db_health_ok(monkeypatch: pytest.MonkeyPatch) -> None:
    seen = {}

    class Cur:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            return False

        def execute(self, sql):
            seen["sql"] = sql

        def fetchone(self):
            return (1,)

    class Conn:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            return False

        def cursor(self):
            return Cur()

    def fake_connect(cfg, **kwargs):
        seen["cfg"] = cfg
        return Conn()

    monkeypatch.setattr("qdbmap.client.connect_pg_safe", fake_connect)
    res = CliRunner().invoke(main, ["db", "health", "--host", "qdb.internal", "--pg-port", "18812"])
    assert res.exit_code == 0, res.output
    payload = json.loads(res.stdout)
    assert payload["ok"] is True
    assert payload["host"] == "qdb.internal"
    assert payload["pg_port"] == 18812
    assert seen["sql"] == "SELECT 1"
    assert seen["cfg"].connect_timeout_s == 1.0


def test_cli_db_health_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_connect(cfg, **kwargs):
        raise RuntimeError("connection refused")

    monkeypatch.setattr("qdbmap.client.connect_pg_safe", fake_connect)
    res = CliRunner().invoke(main, ["db", "health"])
    assert res.exit_code == 1
    payload = json.loads(res.stdout)
    assert payload["ok"] is False
    assert "connection refused" in payload["error"]
