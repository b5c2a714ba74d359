# src/tasktree/core/state.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..core.errors import EventFailure, SyncError
from ..core.ports import Renderer, Transport
from ..sync.controller import SyncController
from ..sync.ingest import EventIngestQueue
from ..sync.reorder_queue import EventReorderQueue
from ..transport.realtime import RealtimeHub

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    controller: SyncController
    renderer: Renderer
    transport: Transport
    hub: RealtimeHub

    # Wired by bootstrap once the state exists (the queue reports failures back here).
    reorder_queue: EventReorderQueue | None = None
    ingest: EventIngestQueue | None = None
    unsubscribe: Callable[[], None] | None = None

    failures: list[EventFailure] = field(default_factory=list)
    _resync_task: asyncio.Task | None = field(default=None, repr=False)

    async def resync(self, *, immediate: bool = False) -> None:
        """Fetch the authoritative payload and replace the store with it."""
        project_id = str(getattr(self.settings, "project_id", "") or "")
        payload = await self.transport.fetch_bulk(project_id)
        self.controller.bulk_load(payload, immediate=immediate)

    def report_failure(self, failure: EventFailure) -> None:
        """
        Single channel for unrecoverable realtime conditions.

        Host policy: record + warn, then resynchronize with a fresh bulk load.
        """
        self.failures.append(failure)
        name = failure.event.get("event_name") if isinstance(failure.event, dict) else None
        logger.warning("Realtime event failed (%s) name=%s: %s", failure.kind.value, name, failure.error)
        self.schedule_resync()

    def schedule_resync(self) -> None:
        if self._resync_task is not None and not self._resync_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; resync not scheduled")
            return
        self._resync_task = loop.create_task(self._resync_logged())

    async def _resync_logged(self) -> None:
        try:
            await self.resync()
            logger.info("Resynchronized after realtime failure.")
        except SyncError as e:
            logger.error("Resync failed: %s", e)
        except Exception:
            logger.exception("Resync failed")

    async def complete_task(self, task_id: str) -> None:
        """
        Close a task upstream, then drop it (and its subtree) locally.

        The matching item:completed webhook may still arrive; removing an absent
        task is a no-op.
        """
        await self.transport.close_task(task_id)
        self.controller.remove_task(task_id)

    async def aclose(self) -> None:
        """Teardown in order: stop intake, drop buffered retries, stop rendering, close transport."""
        if self.unsubscribe is not None:
            self.unsubscribe()
            self.unsubscribe = None
        if self.ingest is not None:
            self.ingest.close()
        if self.reorder_queue is not None:
            self.reorder_queue.clear()
        self.controller.dispose()

        if self._resync_task is not None and not self._resync_task.done():
            self._resync_task.cancel()
            try:
                await self._resync_task
            except asyncio.CancelledError:
                pass

        await self.transport.aclose()
