# src/flowdesk/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time (the bearer token lives in the session file).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "FLOWDESK"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Real environment variables win over the local .env file.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
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


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Persistence service ----
    api_base_url: str
    connect_timeout_seconds: float
    read_timeout_seconds: float

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    session_path: Path

    # ---- UX ----
    confirm_destructive: bool

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "flowdesk").strip() or "flowdesk"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        api_base_url = _env(_k("API_BASE_URL"), "http://localhost:5000/api").strip().rstrip("/")

        connect_timeout = _env_float(_k("CONNECT_TIMEOUT_SECONDS"), 5.0)
        read_timeout = _env_float(_k("READ_TIMEOUT_SECONDS"), 15.0)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/flowdesk"))
        session_path = _env_path(_k("SESSION_PATH"), data_dir / "session.json")

        confirm_destructive = _env_bool(_k("CONFIRM_DESTRUCTIVE"), True)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            api_base_url=api_base_url,
            connect_timeout_seconds=max(0.1, connect_timeout),
            read_timeout_seconds=max(0.1, read_timeout),
            data_dir=data_dir,
            session_path=session_path,
            confirm_destructive=confirm_destructive,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
