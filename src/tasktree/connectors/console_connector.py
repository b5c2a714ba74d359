# src/tasktree/connectors/console_connector.py

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Callable
from datetime import datetime
from typing import TextIO

from ..core.errors import SyncError
from ..core.models import Snapshot, TaskNode
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def format_snapshot(snapshot: Snapshot) -> list[str]:
    """Plain-text outline of a snapshot; '+' marks pending-enter entities."""
    lines: list[str] = []
    title = snapshot.project.name if snapshot.project else "(no project)"
    lines.append(f"== {title} ==")

    def add_node(node: TaskNode) -> None:
        mark = "+" if node.id in snapshot.entering else "-"
        lines.append(f"{'  ' * (node.depth + 1)}{mark} {node.task.content} [{node.id}]")
        for child in node.children:
            add_node(child)

    for root in snapshot.unsectioned:
        add_node(root)

    for view in snapshot.sections:
        mark = "+" if view.id in snapshot.entering else "#"
        lines.append(f"{mark} {view.section.name} [{view.id}]")
        for root in view.tasks:
            add_node(root)

    return lines


class ConsoleRenderer:
    """
    Renderer that prints the tree to a text stream.

    Elements are the ids of the last rendered snapshot. Exit animations are
    simulated with loop.call_later so the controller's hold/poll path is exercised.
    """

    def __init__(self, out: TextIO | None = None, *, exit_animation_ms: float = 250.0) -> None:
        self._out = out if out is not None else sys.stdout
        self._exit_s = max(0.0, float(exit_animation_ms)) / 1000.0
        self._elements: set[str] = set()
        self._last: Snapshot | None = None

    @property
    def last_snapshot(self) -> Snapshot | None:
        return self._last

    def _print(self, text: str) -> None:
        print(f"[{_ts_local()}] {text}", file=self._out, flush=True)

    def render(self, snapshot: Snapshot) -> None:
        self._last = snapshot
        self._elements = snapshot.task_ids() | set(snapshot.section_ids())
        for line in format_snapshot(snapshot):
            self._print(line)

    def find_element(self, entity_id: str) -> str | None:
        return entity_id if entity_id in self._elements else None

    def on_add(self, handle: str, entity_id: str) -> None:
        self._print(f"(enter) {entity_id}")

    def on_remove(self, handle: str, done: Callable[[], None]) -> None:
        self._print(f"(exit) {handle}")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            done()
            return
        loop.call_later(self._exit_s, done)

    def on_tree_change(self) -> None:
        logger.debug("Tree changed: %d visible elements", len(self._elements))


async def run_console_feed(state: AppState, stream: TextIO | None = None) -> None:
    """
    Read realtime events from stdin, one JSON object per line.

    - webhook bodies ({"user_id", "event_name", "event_data"}) go through the hub
    - bare envelopes ({"event_name", "event_data"}) go straight to the ingest queue
    - /complete <task_id> closes a task upstream and removes it locally
    - /resync reloads the bulk payload, /exit quits
    """
    stream = stream if stream is not None else sys.stdin
    logger.info("Console feed started.")

    while True:
        try:
            line = await asyncio.to_thread(stream.readline)
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            break

        if not line:
            logger.info("Console EOF received, exiting.")
            break

        line = line.strip()
        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if line.lower() == "/resync":
            try:
                await state.resync()
            except SyncError as e:
                logger.error("Resync failed: %s", e)
            continue

        if line.lower().startswith("/complete"):
            task_id = line[len("/complete"):].strip()
            if not task_id:
                logger.warning("Usage: /complete <task_id>")
                continue
            try:
                await state.complete_task(task_id)
            except SyncError as e:
                logger.error("Complete failed id=%s: %s", task_id, e)
            continue

        try:
            body = json.loads(line)
        except ValueError:
            logger.warning("Not a JSON event: %r", line)
            continue

        if not isinstance(body, dict):
            logger.warning("Event must be a JSON object: %r", line)
            continue

        if "user_id" in body:
            delivered = state.hub.publish_webhook(body)
            if not delivered:
                logger.info("Webhook for another channel ignored (%s)", body.get("event_name"))
        elif state.ingest is not None:
            state.ingest.submit(body)

    logger.info("Console feed finished.")
