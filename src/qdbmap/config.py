"""
Configuration: connection settings for QuestDB.

Loads configuration from:
1. Environment variables
2. .env file (if present, via python-dotenv)

Usage:
    from qdbmap.config import load_config, get_questdb_host

    load_config()
    host = get_questdb_host()
"""

from __future__ import annotations

import os
from pathlib import Path

import structlog

log = structlog.get_logger()

# Flag to track if config has been loaded
_config_loaded = False

_TRUTHY = {"1", "true", "yes", "on"}


def find_dotenv() -> Path | None:
    """Find the .env file, searching up from current directory."""
    current = Path.cwd()
    for _ in range(10):  # Max 10 levels up
        env_file = current / ".env"
        if env_file.exists():
            return env_file
        if current.parent == current:
            break
        current = current.parent
    return None


def load_config() -> None:
    """
    Load configuration from .env file if present.

    Safe to call repeatedly; only the first call reads the file.
    """
    global _config_loaded
    if _config_loaded:
        return

    # Tests should control environment explicitly.
    if os.environ.get("PYTEST_CURRENT_TEST") or str(os.environ.get("QDBMAP_DISABLE_DOTENV", "")).lower() in _TRUTHY:
        log.debug("config.skip_dotenv", reason="pytest_or_disabled")
        _config_loaded = True
        return

    from dotenv import load_dotenv

    env_file = find_dotenv()
    if env_file:
        load_dotenv(env_file, override=False)
        log.debug("config.loaded_dotenv", path=str(env_file))
    else:
        log.debug("config.no_dotenv_found")

    _config_loaded = True


def get_env(key: str, default: str | None = None, required: bool = False) -> str | None:
    """Get an environment variable with optional default and required check."""
    value = os.environ.get(key, default)
    if required and not value:
        raise RuntimeError(
            f"Required environment variable {key} is not set. "
            f"Please set it in your .env file or environment."
        )
    return value


def env_int(key: str, default: int) -> int:
    """Read an integer environment variable with safe fallback."""
    load_config()
    try:
        return int(get_env(key, str(int(default))) or int(default))
    except ValueError:
        log.warning("config.invalid_int", key=key, value=get_env(key), fallback=int(default))
        return int(default)


def env_float(key: str, default: float) -> float:
    """Read a float environment variable with safe fallback."""
    load_config()
    try:
        return float(get_env(key, str(float(default))) or float(default))
    except ValueError:
        log.warning("config.invalid_float", key=key, value=get_env(key), fallback=float(default))
        return float(default)


def env_bool(key: str, default: bool) -> bool:
    """Read a boolean environment variable with common truthy values."""
    load_config()
    raw = str(get_env(key, "1" if default else "0") or "").strip().lower()
    return raw in _TRUTHY


# ---------------------------------------------------------------------------
# QuestDB connection defaults
# ---------------------------------------------------------------------------


def get_questdb_host() -> str:
    load_config()
    return str(get_env("QDBMAP_QUESTDB_HOST", "127.0.0.1") or "127.0.0.1")


def get_questdb_ilp_port() -> int:
    return env_int("QDBMAP_QUESTDB_ILP_PORT", 9009)


def get_questdb_ilp_tls() -> bool:
    return env_bool("QDBMAP_QUESTDB_ILP_TLS", False)


def get_questdb_pg_port() -> int:
    return env_int("QDBMAP_QUESTDB_PG_PORT", 8812)


def get_questdb_pg_user() -> str:
    load_config()
    return str(get_env("QDBMAP_QUESTDB_PG_USER", "admin") or "admin")


def get_questdb_pg_password() -> str:
    load_config()
    return str(get_env("QDBMAP_QUESTDB_PG_PASSWORD", "quest") or "quest")


def get_questdb_pg_dbname() -> str:
    load_config()
    return str(get_env("QDBMAP_QUESTDB_PG_DBNAME", "qdb") or "qdb")


def get_connect_timeout_s() -> float:
    return max(0.1, env_float("QDBMAP_CONNECT_TIMEOUT_S", 2.0))


def get_connect_retries() -> int:
    return max(0, env_int("QDBMAP_CONNECT_RETRIES", 2))
