# src/tasktree/sync/ingest.py

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from typing import Any

from ..core.ports import Envelope

logger = logging.getLogger(__name__)


class EventIngestQueue:
    """
    FIFO micro-queue in front of the reorder queue.

    Realtime events are consumed one at a time: an event submitted while another is
    being processed (e.g. from inside a renderer hook) waits for its turn instead of
    running re-entrantly.
    """

    def __init__(self, consumer: Callable[[Envelope], Any]) -> None:
        self._consumer = consumer
        self._queue: deque[Envelope] = deque()
        self._draining = False
        self._closed = False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, envelope: Envelope) -> None:
        if self._closed:
            logger.debug("Ingest queue closed; dropping %r", envelope.get("event_name"))
            return
        self._queue.append(envelope)
        if not self._draining:
            self._drain()

    def _drain(self) -> None:
        self._draining = True
        try:
            while self._queue and not self._closed:
                envelope = self._queue.popleft()
                try:
                    self._consumer(envelope)
                except Exception:
                    # The reorder queue reports its own failures; this guards the loop.
                    logger.exception("Event consumer crashed name=%r", envelope.get("event_name"))
        finally:
            self._draining = False

    def close(self) -> None:
        self._closed = True
        self._queue.clear()
