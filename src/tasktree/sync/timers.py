# src/tasktree/sync/timers.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class AsyncioTimers:
    """
    Timers port backed by an asyncio event loop.

    Delays are given in milliseconds. Callbacks run on the loop thread, so they never
    interleave with a store mutation that is already running.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        delay_s = max(0.0, float(delay_ms)) / 1000.0
        return self._get_loop().call_later(delay_s, callback)
