# src/tasktree/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time: without an API token the app runs offline.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKTREE"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_opt(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


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

    # ---- Transport ----
    api_base_url: str
    api_token: str | None
    project_id: str
    user_id: str
    offline_payload_path: Path | None
    http_timeout_seconds: float

    # ---- Sync timing (milliseconds) ----
    render_debounce_ms: float
    animation_poll_ms: float
    reorder_window_ms: float
    exit_animation_ms: float

    @property
    def offline(self) -> bool:
        return not self.api_token

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "tasktree").strip() or "tasktree"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tasktree"))

        api_base_url = _env(_k("API_BASE_URL"), "https://api.todoist.com").strip().rstrip("/")
        api_token = _env_opt(_k("API_TOKEN"))
        project_id = _env(_k("PROJECT_ID"), "").strip()
        user_id = _env(_k("USER_ID"), "").strip()

        raw_offline = _env_opt(_k("OFFLINE_PAYLOAD_PATH"))
        offline_payload_path = Path(raw_offline).expanduser() if raw_offline else None

        # Negative or zero timings make no sense; fall back to the defaults.
        http_timeout_seconds = _env_float(_k("HTTP_TIMEOUT_SECONDS"), 15.0)
        if http_timeout_seconds <= 0:
            http_timeout_seconds = 15.0

        render_debounce_ms = max(0.0, _env_float(_k("RENDER_DEBOUNCE_MS"), 150.0))
        animation_poll_ms = _env_float(_k("ANIMATION_POLL_MS"), 50.0)
        if animation_poll_ms <= 0:
            animation_poll_ms = 50.0
        reorder_window_ms = max(0.0, _env_float(_k("REORDER_WINDOW_MS"), 3000.0))
        exit_animation_ms = max(0.0, _env_float(_k("EXIT_ANIMATION_MS"), 250.0))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            api_base_url=api_base_url,
            api_token=api_token,
            project_id=project_id,
            user_id=user_id,
            offline_payload_path=offline_payload_path,
            http_timeout_seconds=http_timeout_seconds,
            render_debounce_ms=render_debounce_ms,
            animation_poll_ms=animation_poll_ms,
            reorder_window_ms=reorder_window_ms,
            exit_animation_ms=exit_animation_ms,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
