# src/tasksync/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time (an empty API URL means offline mode).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKSYNC"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


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
    data_dir: Path

    # ---- Tasks API ----
    api_base_url: str
    api_token: str | None
    request_timeout_seconds: float

    # ---- Validation limits ----
    title_max_length: int
    description_max_length: int

    # ---- Engine ----
    history_limit: int
    offline_latency_seconds: float

    @property
    def offline(self) -> bool:
        return not self.api_base_url

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "tasksync").strip() or "tasksync"
        log_level = _env(_k("LOG_LEVEL"), "INFO").strip().upper() or "INFO"
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tasksync"))

        # Backend_Url is the name the mobile client used; accept it as a fallback.
        api_base_url = (_first_env(_k("API_BASE_URL"), "Backend_Url", default="") or "").strip()
        api_token = (_first_env(_k("API_TOKEN"), default="") or "").strip() or None
        request_timeout_seconds = max(0.1, _env_float(_k("REQUEST_TIMEOUT_SECONDS"), 15.0))

        title_max_length = max(1, _env_int(_k("TITLE_MAX_LENGTH"), 100))
        description_max_length = max(0, _env_int(_k("DESCRIPTION_MAX_LENGTH"), 500))

        history_limit = max(1, _env_int(_k("HISTORY_LIMIT"), 50))
        offline_latency_seconds = max(0.0, _env_float(_k("OFFLINE_LATENCY_SECONDS"), 0.0))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            api_base_url=api_base_url,
            api_token=api_token,
            request_timeout_seconds=request_timeout_seconds,
            title_max_length=title_max_length,
            description_max_length=description_max_length,
            history_limit=history_limit,
            offline_latency_seconds=offline_latency_seconds,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Load settings once (reads .env on first call, never overriding real env vars)."""
    global _SETTINGS
    if _SETTINGS is None:
        load_dotenv(override=False)
        _SETTINGS = Settings.from_env()
    return _SETTINGS
