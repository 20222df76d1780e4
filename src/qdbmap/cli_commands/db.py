from __future__ import annotations

import json
import time

import click
import structlog

log = structlog.get_logger()


def register(main: click.Group) -> None:
    """
    Register `qdbmap db ...` commands onto the root CLI group.
    """

    @main.group("db")
    @click.pass_context
    def db_group(ctx: click.Context) -> None:
        """QuestDB connectivity utilities."""
        _ = ctx

    @db_group.command("health")
    @click.option("--host", default="", help="QuestDB host (default: env/config)")
    @click.option("--pg-port", default=0, type=int, help="QuestDB PGWire port (default: env/config)")
    @click.option("--connect-timeout", default=1, type=int, show_default=True, help="Connect timeout seconds")
    def db_health(host: str, pg_port: int, connect_timeout: int) -> None:
        """Check QuestDB reachability via PGWire (SELECT 1)."""
        import dataclasses

        from qdbmap.client import connect_pg_safe, make_client_config_from_env

        cfg = make_client_config_from_env()
        cfg = dataclasses.replace(
            cfg,
            host=str(host).strip() or cfg.host,
            pg_port=int(pg_port) if int(pg_port) > 0 else cfg.pg_port,
            connect_timeout_s=float(connect_timeout),
        )

        t0 = time.time()
        try:
            with connect_pg_safe(cfg, retries=1, backoff_s=0.2, autocommit=True) as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()
            dt_ms = int((time.time() - t0) * 1000.0)
            click.echo(json.dumps({"ok": True, "host": cfg.host, "pg_port": int(cfg.pg_port), "latency_ms": dt_ms}))
        except Exception as e:
            dt_ms = int((time.time() - t0) * 1000.0)
            log.warning("db.health_failed", host=cfg.host, pg_port=int(cfg.pg_port), error=str(e))
            click.echo(
                json.dumps(
                    {"ok": False, "host": cfg.host, "pg_port": int(cfg.pg_port), "latency_ms": dt_ms, "error": str(e)}
                )
            )
            raise SystemExit(1)
