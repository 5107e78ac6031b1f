"""
Environment-backed settings.

Values are read at call time so tests can monkeypatch the environment.
Empty or unparsable values fall back to the given default.
"""

from __future__ import annotations

import os

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def env_str(name: str, default: str = "") -> str:
    return os.environ.get(name, "").strip() or default


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    return default


def is_development() -> bool:
    return env_str("APP_ENV", "production").lower() == "development"


def frontend_url() -> str:
    return env_str("FRONTEND_URL", "http://localhost:3000")


def jobs_enabled() -> bool:
    return env_bool("JOBS_ENABLED", True)
