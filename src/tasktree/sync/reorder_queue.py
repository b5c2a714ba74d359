# src/tasktree/sync/reorder_queue.py

"""
Event reorder queue.

Wraps a synchronous, possibly-failing event handler:
- a successful event is done,
- a failing event with an entity id is buffered under that id and the entity's single
  timer is (re)armed; on expiry every buffered event for the entity is replayed once,
  oldest timestamp first,
- a failing event without an id cannot be tracked and is reported at once.

There is no second retry round: whatever still fails during the replay is reported
as retry-exhausted and dropped.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..core.errors import EventFailure, FailureKind
from ..core.models import parse_timestamp
from ..core.ports import Envelope, FailureReporter, TimerHandle, Timers

logger = logging.getLogger(__name__)

DEFAULT_REORDER_WINDOW_MS = 3000.0


def event_entity_id(event: Any) -> str | None:
    """Entity id carried by an envelope's payload, if any."""
    if not isinstance(event, Mapping):
        return None
    data = event.get("event_data")
    if not isinstance(data, Mapping):
        return None
    raw = data.get("id")
    if raw is None:
        return None
    s = str(raw).strip()
    return s or None


def event_timestamp(event: Any) -> float | None:
    """Payload update time as epoch seconds, if present and parseable."""
    if not isinstance(event, Mapping):
        return None
    data = event.get("event_data")
    if not isinstance(data, Mapping):
        return None
    dt = parse_timestamp(data.get("updated_at"))
    return dt.timestamp() if dt is not None else None


@dataclass(slots=True)
class _Pending:
    events: list[tuple[Envelope, float]] = field(default_factory=list)
    timer: TimerHandle | None = None


class EventReorderQueue:
    def __init__(
        self,
        handler: Callable[[Envelope], Any],
        *,
        timers: Timers,
        on_failure: FailureReporter,
        window_ms: float = DEFAULT_REORDER_WINDOW_MS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._handler = handler
        self._timers = timers
        self._on_failure = on_failure
        self._window_ms = max(0.0, float(window_ms))
        self._clock = clock
        self._pending: dict[str, _Pending] = {}

    def pending_count(self) -> int:
        return sum(len(p.events) for p in self._pending.values())

    def pending_ids(self) -> list[str]:
        return list(self._pending.keys())

    def process(self, event: Envelope) -> bool:
        """
        Run the handler now. Returns True on first-try success.

        On failure the event is buffered (if it carries an entity id) or reported
        as unrecoverable.
        """
        try:
            self._handler(event)
            return True
        except Exception as e:
            entity_id = event_entity_id(event)
            if entity_id is None:
                logger.warning("Event failed and has no entity id; not retryable: %s", e)
                self._report(FailureKind.UNRECOVERABLE, event, e)
                return False

            ts = event_timestamp(event)
            if ts is None:
                ts = self._clock()

            pending = self._pending.setdefault(entity_id, _Pending())
            pending.events.append((event, ts))
            if pending.timer is not None:
                pending.timer.cancel()
            pending.timer = self._timers.call_later(
                self._window_ms, lambda: self._replay(entity_id)
            )
            logger.info(
                "Event buffered for retry entity=%s name=%s buffered=%d (%s)",
                entity_id,
                event.get("event_name") if isinstance(event, Mapping) else None,
                len(pending.events),
                e,
            )
            return False

    def clear(self) -> None:
        """Cancel every timer and drop every buffered event (teardown)."""
        for pending in self._pending.values():
            if pending.timer is not None:
                pending.timer.cancel()
        dropped = self.pending_count()
        self._pending.clear()
        if dropped:
            logger.debug("Reorder queue cleared, dropped=%d", dropped)

    def _replay(self, entity_id: str) -> None:
        pending = self._pending.pop(entity_id, None)
        if pending is None:
            return

        # sorted() is stable: equal timestamps keep arrival order.
        batch = sorted(pending.events, key=lambda item: item[1])
        logger.debug("Replaying %d buffered event(s) for entity=%s", len(batch), entity_id)

        for event, _ts in batch:
            try:
                self._handler(event)
            except Exception as e:
                logger.warning("Buffered event still failing entity=%s: %s", entity_id, e)
                self._report(FailureKind.RETRY_EXHAUSTED, event, e)

    def _report(self, kind: FailureKind, event: Any, error: BaseException | None) -> None:
        try:
            self._on_failure(EventFailure(kind=kind, event=event, error=error))
        except Exception:
            logger.exception("Failure reporter crashed kind=%s", kind.value)
