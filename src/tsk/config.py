# src/tsk/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object per process, read once at startup.
- Every value has a default, so a bare `tsk` works in any directory.
- Command-line flags override settings; settings never override flags.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "TSK"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env from the working directory if python-dotenv is installed."""
    try:
        from dotenv import load_dotenv
    except ImportError:
        return
    load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_optional(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path | None) -> Path | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    log_dir: Path | None

    # ---- Store ----
    store_dir: Path
    lock_timeout: float
    default_prefix: str | None
    slug_ids: bool

    @staticmethod
    def from_env() -> Settings:
        lock_timeout = _env_float(_k("LOCK_TIMEOUT"), 5.0)
        if lock_timeout < 0:
            lock_timeout = 5.0

        return Settings(
            app_name=_env(_k("APP_NAME"), "tsk") or "tsk",
            log_level=_env(_k("LOG_LEVEL"), "WARNING").strip().upper() or "WARNING",
            log_dir=_env_path(_k("LOG_DIR"), None),
            store_dir=_env_path(_k("DIR"), Path(".tsk")) or Path(".tsk"),
            lock_timeout=lock_timeout,
            default_prefix=_env_optional(_k("PREFIX")),
            slug_ids=_env_bool(_k("SLUG_IDS"), True),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _load_dotenv_if_available()
        _SETTINGS = Settings.from_env()
    return _SETTINGS
