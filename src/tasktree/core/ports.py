# src/tasktree/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The sync engine depends on Protocols instead of concrete implementations.
This keeps the renderer/transport/timer sources swappable and makes testing easier.
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from .errors import EventFailure
from .models import BulkPayload, Snapshot

Envelope = dict[str, Any]
# Realtime event envelope: {"event_name": "...", "event_data": {...}}.

FailureReporter = Callable[[EventFailure], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Timers(Protocol):
    """
    Single-threaded timer source.

    Delays are in milliseconds. Callbacks run on the owning loop, never concurrently
    with each other or with store mutations.
    """

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle: ...


class Renderer(Protocol):
    """
    Presentation-side port: turns a snapshot into visible state.

    Only render() and find_element() are mandatory. The hooks are looked up
    with getattr, so a renderer without animations can leave them out:
    - on_add(handle, entity_id): play the enter transition for a freshly rendered element
    - on_remove(handle, done): play the exit transition, then call done() exactly once
    - on_tree_change(): layout-dependent work after each completed render

    render() may return an awaitable; the controller treats the render as
    executing until it resolves.
    """

    def render(self, snapshot: Snapshot) -> Awaitable[None] | None: ...

    def find_element(self, entity_id: str) -> Any | None: ...


class Transport(Protocol):
    """Network-side port: fetches the authoritative bulk payload and closes tasks."""

    def fetch_bulk(self, project_id: str) -> Awaitable[BulkPayload]: ...

    def close_task(self, task_id: str) -> Awaitable[None]: ...

    def aclose(self) -> Awaitable[None]: ...
