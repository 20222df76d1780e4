"""
qdbmap CLI thin entrypoint.

Command implementations are registered from `qdbmap.cli_commands.*`.
"""

from __future__ import annotations

import logging
import os
import sys

import click
import structlog

from qdbmap.config import load_config

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    env_level = os.environ.get("QDBMAP_LOG_LEVEL", "").strip().lower()
    if verbose or env_level in {"debug", "trace"}:
        level = logging.DEBUG
    elif env_level in {"warning", "warn"}:
        level = logging.WARNING
    elif env_level == "error":
        level = logging.ERROR
    else:
        level = logging.INFO
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    # Logs go to stderr so command output (DDL, ILP lines, JSON) stays pipeable.
    logging.basicConfig(format="%(message)s", level=level, handlers=[logging.StreamHandler(sys.stderr)])


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """qdbmap: map qdb-tagged dataclasses to QuestDB ILP lines, DDL and rows."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose)
    load_config()


# Command groups live in `qdbmap.cli_commands.*` and are registered here.
from qdbmap.cli_commands.db import register as _register_db
from qdbmap.cli_commands.schema import register as _register_schema

_register_schema(main)
_register_db(main)


def entrypoint() -> None:
    main(obj={})


if __name__ == "__main__":
    entrypoint()
