# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from tasktree.core.models import Section, Task
from tasktree.store.entity_store import EntityStore
from tasktree.sync.controller import SyncController

from .fakes import FakeRenderer, FakeTimers

T0 = "2024-01-01T00:00:00Z"
T1 = "2024-01-01T00:01:00Z"
T2 = "2024-01-01T00:02:00Z"


def make_task(task_id: str, **kw: Any) -> Task:
    data: dict[str, Any] = {
        "id": task_id,
        "parent_id": None,
        "section_id": None,
        "child_order": 0,
        "content": task_id,
        "updated_at": T0,
    }
    data.update(kw)
    return Task.from_dict(data)


def make_section(section_id: str, **kw: Any) -> Section:
    data: dict[str, Any] = {
        "id": section_id,
        "name": section_id.upper(),
        "section_order": 0,
        "updated_at": T0,
    }
    data.update(kw)
    return Section.from_dict(data)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and AppState.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="tasktree-test",
        data_dir=tmp_path / "data",
        offline=True,
        offline_payload_path=None,
        project_id="p1",
        user_id="u1",
        render_debounce_ms=150.0,
        animation_poll_ms=50.0,
        reorder_window_ms=3000.0,
        exit_animation_ms=0.0,
    )


@pytest.fixture()
def store() -> EntityStore:
    return EntityStore()


@pytest.fixture()
def timers() -> FakeTimers:
    return FakeTimers()


@pytest.fixture()
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture()
def controller(renderer: FakeRenderer, timers: FakeTimers) -> SyncController:
    return SyncController(renderer, timers=timers, debounce_ms=150, animation_poll_ms=50)
