"""
QuestDB client: ILP socket for writes, PGWire (psycopg) for DDL and queries.

The client only moves bytes and SQL; all record mapping happens in
`qdbmap.model`. Transport errors are propagated as raised by the socket layer
or psycopg. Writes are never retried; connecting retries transient failures.
"""

from __future__ import annotations

import socket
import ssl
import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import structlog

from .model import Model
from .scan import scan_row

log = structlog.get_logger()


@dataclass(frozen=True)
class ClientConfig:
    """
    Connection config for QuestDB.

    ILP (Influx Line Protocol over TCP) carries writes; PGWire (psycopg)
    carries DDL and read queries.
    """

    host: str = "127.0.0.1"
    ilp_port: int = 9009
    ilp_tls: bool = False
    pg_port: int = 8812
    pg_user: str = "admin"
    pg_password: str = "quest"
    pg_dbname: str = "qdb"
    connect_timeout_s: float = 2.0
    connect_retries: int = 2


def make_client_config_from_env() -> ClientConfig:
    """Build ClientConfig from QDBMAP_* env/config helpers."""
    from qdbmap.config import (
        get_connect_retries,
        get_connect_timeout_s,
        get_questdb_host,
        get_questdb_ilp_port,
        get_questdb_ilp_tls,
        get_questdb_pg_dbname,
        get_questdb_pg_password,
        get_questdb_pg_port,
        get_questdb_pg_user,
    )

    return ClientConfig(
        host=str(get_questdb_host()),
        ilp_port=int(get_questdb_ilp_port()),
        ilp_tls=bool(get_questdb_ilp_tls()),
        pg_port=int(get_questdb_pg_port()),
        pg_user=str(get_questdb_pg_user()),
        pg_password=str(get_questdb_pg_password()),
        pg_dbname=str(get_questdb_pg_dbname()),
        connect_timeout_s=float(get_connect_timeout_s()),
        connect_retries=int(get_connect_retries()),
    )


def psycopg_module():
    """
    Import psycopg lazily (query support is optional via extras).
    """
    try:
        import psycopg  # type: ignore

        return psycopg
    except ImportError as e:
        raise RuntimeError("psycopg not installed. Install with: pip install -e '.[questdb]'") from e


_TRANSIENT_ERRORS = (
    "server closed the connection unexpectedly",
    "consuming input failed",
    "connection reset",
    "connection refused",
    "terminating connection",
    "could not connect",
    "timeout",
    "timed out",
    "broken pipe",
    "eof detected",
    "network is unreachable",
)


def is_transient_error(err: Exception) -> bool:
    """
    Best-effort classification for transient connect failures.
    """
    if isinstance(err, (ConnectionRefusedError, ConnectionResetError, TimeoutError)):
        return True
    msg = str(err or "").lower()
    return any(s in msg for s in _TRANSIENT_ERRORS)


def _with_retries(what: str, fn, *, retries: int, backoff_s: float):
    for attempt in range(int(retries) + 1):
        try:
            return fn()
        except Exception as e:
            if attempt >= int(retries) or not is_transient_error(e):
                raise
            wait_s = float(backoff_s) * (2**attempt)
            log.warning(
                "client.connect_retry",
                target=what,
                attempt=int(attempt + 1),
                max_attempts=int(retries) + 1,
                wait_s=wait_s,
                error=str(e),
            )
            if wait_s > 0:
                time.sleep(wait_s)
    raise RuntimeError(f"{what} connect failed without exception")


def connect_pg(cfg: ClientConfig, *, connect_timeout_s: float | None = None):
    """
    Connect to QuestDB PGWire using psycopg.
    """
    psycopg = psycopg_module()
    to = connect_timeout_s if connect_timeout_s is not None else cfg.connect_timeout_s
    return psycopg.connect(
        user=cfg.pg_user,
        password=cfg.pg_password,
        host=cfg.host,
        port=int(cfg.pg_port),
        dbname=cfg.pg_dbname,
        connect_timeout=max(1, int(to)),
    )


def connect_pg_safe(
    cfg: ClientConfig,
    *,
    retries: int | None = None,
    backoff_s: float = 0.2,
    autocommit: bool = True,
):
    """
    Connect to QuestDB PGWire with retries and optional autocommit.
    """

    def _connect():
        conn = connect_pg(cfg)
        if autocommit:
            conn.autocommit = True
        return conn

    n = cfg.connect_retries if retries is None else int(retries)
    return _with_retries("pgwire", _connect, retries=n, backoff_s=backoff_s)


def connect_ilp(cfg: ClientConfig, *, retries: int | None = None, backoff_s: float = 0.2) -> socket.socket:
    """
    Open the ILP TCP stream (optionally TLS wrapped) with retries.
    """

    def _connect() -> socket.socket:
        sock = socket.create_connection((cfg.host, int(cfg.ilp_port)), timeout=float(cfg.connect_timeout_s))
        if cfg.ilp_tls:
            ctx = ssl.create_default_context()
            sock = ctx.wrap_socket(sock, server_hostname=cfg.host)
        return sock

    n = cfg.connect_retries if retries is None else int(retries)
    return _with_retries("ilp", _connect, retries=n, backoff_s=backoff_s)


class Client:
    """
    QuestDB connection pair: ILP stream for writes, PGWire for SQL.

    Not thread-safe; use one client per thread.
    """

    def __init__(self, config: ClientConfig | None = None) -> None:
        self.config = config or ClientConfig()
        self._ilp: socket.socket | None = None
        self._pg: Any = None

    @classmethod
    def default(cls) -> Client:
        return cls(ClientConfig())

    @classmethod
    def from_env(cls) -> Client:
        return cls(make_client_config_from_env())

    # -- lifecycle ---------------------------------------------------------

    def connect(self) -> None:
        """Connect both the ILP stream and the PGWire connection."""
        self._ilp = connect_ilp(self.config)
        log.debug("client.ilp_connected", host=self.config.host, port=int(self.config.ilp_port), tls=self.config.ilp_tls)
        try:
            self._pg = connect_pg_safe(self.config)
        except Exception:
            self._close_ilp()
            raise
        log.debug("client.pg_connected", host=self.config.host, port=int(self.config.pg_port))

    def _close_ilp(self) -> None:
        sock, self._ilp = self._ilp, None
        if sock is not None:
            sock.close()

    def close(self) -> None:
        """Close both connections; errors from either are reported together."""
        errors: list[str] = []
        pg, self._pg = self._pg, None
        if pg is not None:
            try:
                pg.close()
            except Exception as e:
                errors.append(f"could not close pg connection: {e}")
        try:
            self._close_ilp()
        except OSError as e:
            errors.append(f"could not close ilp stream: {e}")
        if errors:
            raise RuntimeError("; ".join(errors))

    def __enter__(self) -> Client:
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def db(self) -> Any:
        """The underlying psycopg connection."""
        if self._pg is None:
            raise RuntimeError("client is not connected")
        return self._pg

    # -- writes ------------------------------------------------------------

    def write_message(self, message: bytes) -> None:
        """Send raw ILP bytes."""
        if self._ilp is None:
            raise RuntimeError("client is not connected")
        self._ilp.sendall(message)

    def write(self, record: Any, *, table_name: str | None = None) -> None:
        """Map `record` to one ILP line and send it."""
        model = Model.from_record(record, table_name=table_name)
        line = model.marshal_line()
        self.write_message(line)
        log.debug("client.ilp_write", table=model.table_name, nbytes=len(line))

    def write_batch(self, records: Iterable[Any], *, table_name: str | None = None) -> None:
        """
        Map every record first, then send all lines in one write.

        A record that fails to map aborts the batch before anything is sent.
        """
        payload = b"".join(Model.from_record(r, table_name=table_name).marshal_line() for r in records)
        if not payload:
            return
        self.write_message(payload)
        log.debug("client.ilp_write", table=table_name, nbytes=len(payload), lines=payload.count(b"\n"))

    # -- sql ---------------------------------------------------------------

    def create_table_if_not_exists(self, record: Any, *, table_name: str | None = None) -> str:
        """Create the table for `record` (instance or dataclass) and return the statement."""
        stmt = Model.from_record(record, table_name=table_name, serialize=False).create_table_statement()
        with self.db.cursor() as cur:
            cur.execute(stmt)
        log.info("client.ddl_executed", statement=stmt)
        return stmt

    def query_into(self, sql: str, dest: Any, params: Any = None) -> Any | None:
        """
        Run `sql` and scan its first row into `dest`.

        Returns `dest`, or None when the query yields no rows.
        """
        with self.db.cursor() as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
        if row is None:
            return None
        return scan_row(row, dest)

    def select_into(
        self,
        dest: Any,
        *,
        where: str = "",
        order_by: str = "",
        params: Any = None,
        table_name: str | None = None,
    ) -> Any | None:
        """`SELECT <columns of dest> FROM <table> [WHERE ...] [ORDER BY ...] LIMIT 1` into `dest`."""
        model = Model.from_record(dest, table_name=table_name, serialize=False)
        sql = f'SELECT {model.columns()} FROM "{model.table_name}"'
        if where:
            sql += f" WHERE {where}"
        if order_by:
            sql += f" ORDER BY {order_by}"
        sql += " LIMIT 1"
        return self.query_into(sql, dest, params)
