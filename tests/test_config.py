# tests/test_config.py

from __future__ import annotations

from pathlib import Path

import pytest

from tasktree.config import ENV_PREFIX, Settings, get_settings

_KEYS = (
    "APP_NAME",
    "LOG_LEVEL",
    "DATA_DIR",
    "API_BASE_URL",
    "API_TOKEN",
    "PROJECT_ID",
    "USER_ID",
    "OFFLINE_PAYLOAD_PATH",
    "HTTP_TIMEOUT_SECONDS",
    "RENDER_DEBOUNCE_MS",
    "ANIMATION_POLL_MS",
    "REORDER_WINDOW_MS",
    "EXIT_ANIMATION_MS",
)


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for key in _KEYS:
        monkeypatch.delenv(f"{ENV_PREFIX}_{key}", raising=False)
    return monkeypatch


def test_defaults(clean_env: pytest.MonkeyPatch) -> None:
    s = Settings.from_env()

    assert s.app_name == "tasktree"
    assert s.data_dir == Path(".local/tasktree")
    assert s.api_base_url == "https://api.todoist.com"
    assert s.api_token is None
    assert s.offline is True
    assert s.offline_payload_path is None
    assert s.render_debounce_ms == 150.0
    assert s.animation_poll_ms == 50.0
    assert s.reorder_window_ms == 3000.0
    assert s.http_timeout_seconds == 15.0


def test_values_from_env(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    clean_env.setenv("TASKTREE_API_TOKEN", "  tok  ")
    clean_env.setenv("TASKTREE_API_BASE_URL", "https://example.test/")
    clean_env.setenv("TASKTREE_PROJECT_ID", " p1 ")
    clean_env.setenv("TASKTREE_USER_ID", "u1")
    clean_env.setenv("TASKTREE_DATA_DIR", str(tmp_path))
    clean_env.setenv("TASKTREE_OFFLINE_PAYLOAD_PATH", str(tmp_path / "payload.json"))
    clean_env.setenv("TASKTREE_RENDER_DEBOUNCE_MS", "75")
    clean_env.setenv("TASKTREE_REORDER_WINDOW_MS", "1000")

    s = Settings.from_env()
    assert s.api_token == "tok"
    assert s.offline is False
    assert s.api_base_url == "https://example.test"
    assert s.project_id == "p1"
    assert s.user_id == "u1"
    assert s.data_dir == tmp_path
    assert s.offline_payload_path == tmp_path / "payload.json"
    assert s.render_debounce_ms == 75.0
    assert s.reorder_window_ms == 1000.0


@pytest.mark.parametrize(
    ("key", "raw", "attr", "expected"),
    [
        ("RENDER_DEBOUNCE_MS", "soon", "render_debounce_ms", 150.0),
        ("RENDER_DEBOUNCE_MS", "-5", "render_debounce_ms", 0.0),
        ("ANIMATION_POLL_MS", "0", "animation_poll_ms", 50.0),
        ("HTTP_TIMEOUT_SECONDS", "-1", "http_timeout_seconds", 15.0),
        ("EXIT_ANIMATION_MS", "", "exit_animation_ms", 250.0),
    ],
)
def test_invalid_values_fall_back(
    clean_env: pytest.MonkeyPatch, key: str, raw: str, attr: str, expected: float
) -> None:
    clean_env.setenv(f"TASKTREE_{key}", raw)
    assert getattr(Settings.from_env(), attr) == expected


def test_blank_token_means_offline(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("TASKTREE_API_TOKEN", "   ")
    assert Settings.from_env().offline is True


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()
