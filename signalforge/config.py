"""SignalForge — application configuration.

Loads .env variables into a typed config object.
Every variable is optional; malformed values fail fast on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    log_level: str = "INFO"
    equal_tolerance: float = 1e-4
    cache_ttl_seconds: float = 120.0
    cache_max_entries: int = 1024
    api_port: int = 8080
    exit_priority: bool = True  # exit wins when entry and exit fire together


def _number(name: str, default: str, cast):
    raw = os.environ.get(name, default)
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def _flag(name: str, default: str) -> bool:
    raw = os.environ.get(name, default).strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"Invalid value for {name}: {raw!r}")


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the variable when a value
    cannot be parsed.
    """
    load_dotenv(dotenv_path=env_path)

    log_level = os.environ.get("SIGNALFORGE_LOG_LEVEL", "INFO").strip().upper()
    if log_level not in _LOG_LEVELS:
        raise ValueError(f"Invalid value for SIGNALFORGE_LOG_LEVEL: {log_level!r}")

    return Config(
        log_level=log_level,
        equal_tolerance=_number("SIGNALFORGE_EQUAL_TOLERANCE", "0.0001", float),
        cache_ttl_seconds=_number("SIGNALFORGE_CACHE_TTL_SECONDS", "120", float),
        cache_max_entries=_number("SIGNALFORGE_CACHE_MAX_ENTRIES", "1024", int),
        api_port=_number("SIGNALFORGE_API_PORT", "8080", int),
        exit_priority=_flag("SIGNALFORGE_EXIT_PRIORITY", "true"),
    )
