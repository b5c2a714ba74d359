# src/tasktree/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures the local (gitignored) data directory exists,
- wires transport -> controller -> reorder queue -> ingest queue -> hub subscription
  into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.console_connector import ConsoleRenderer
from ..core.ports import Renderer, Timers, Transport
from ..core.state import AppState
from ..sync.controller import SyncController
from ..sync.events import dispatch_envelope
from ..sync.ingest import EventIngestQueue
from ..sync.reorder_queue import EventReorderQueue
from ..sync.timers import AsyncioTimers
from ..transport.realtime import RealtimeHub, channel_key
from ..transport.todoist_client import OfflineTransport, TodoistClient

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)


def _make_transport(settings) -> Transport:
    if settings.offline:
        logger.info("No API token configured; using offline transport.")
        return OfflineTransport(settings.offline_payload_path, project_name=settings.app_name)
    return TodoistClient(
        base_url=settings.api_base_url,
        token=settings.api_token,
        timeout_seconds=settings.http_timeout_seconds,
    )


def create_initial_state(
    *,
    settings=None,
    renderer: Renderer | None = None,
    transport: Transport | None = None,
    timers: Timers | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Collaborators are injectable (tests pass fakes); otherwise the console renderer,
    the configured transport and asyncio timers are used.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if renderer is None:
        renderer = ConsoleRenderer(exit_animation_ms=settings.exit_animation_ms)
    if transport is None:
        transport = _make_transport(settings)
    if timers is None:
        timers = AsyncioTimers()

    controller = SyncController(
        renderer,
        timers=timers,
        debounce_ms=settings.render_debounce_ms,
        animation_poll_ms=settings.animation_poll_ms,
    )
    hub = RealtimeHub()

    state = AppState(
        settings=settings,
        controller=controller,
        renderer=renderer,
        transport=transport,
        hub=hub,
    )

    state.reorder_queue = EventReorderQueue(
        lambda envelope: dispatch_envelope(controller, envelope),
        timers=timers,
        on_failure=state.report_failure,
        window_ms=settings.reorder_window_ms,
    )
    state.ingest = EventIngestQueue(state.reorder_queue.process)

    channel = channel_key(settings.user_id, settings.project_id)
    state.unsubscribe = hub.subscribe(channel, state.ingest.submit)
    logger.info("Realtime channel=%s", channel)
    return state
