# src/tasktree/transport/realtime.py

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Mapping
from typing import Any

from ..core.ports import Envelope

logger = logging.getLogger(__name__)

Subscriber = Callable[[Envelope], None]


def channel_key(user_id: Any, project_id: Any) -> str:
    """Realtime channel for one user's view of one project."""
    return f"{user_id}:{project_id}"


class RealtimeHub:
    """
    Push subscription keyed by channel.

    Webhook bodies look like:
        {"user_id": ..., "event_name": ..., "event_data": {"project_id": ..., ...}}
    Subscribers receive the bare envelope {"event_name", "event_data"}.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)

    def subscribe(self, channel: str, callback: Subscriber) -> Callable[[], None]:
        self._subscribers[channel].append(callback)
        logger.debug("Subscribed to channel=%s", channel)

        def unsubscribe() -> None:
            subs = self._subscribers.get(channel)
            if subs and callback in subs:
                subs.remove(callback)
                if not subs:
                    del self._subscribers[channel]

        return unsubscribe

    def publish(self, channel: str, envelope: Envelope) -> int:
        subs = list(self._subscribers.get(channel, ()))
        for cb in subs:
            try:
                cb(envelope)
            except Exception:
                logger.exception("Realtime subscriber crashed channel=%s", channel)
        return len(subs)

    def publish_webhook(self, body: Mapping[str, Any]) -> int:
        """Route a webhook body to its channel. Returns the number of deliveries."""
        data = body.get("event_data") if isinstance(body, Mapping) else None
        user_id = body.get("user_id") if isinstance(body, Mapping) else None
        project_id = data.get("project_id") if isinstance(data, Mapping) else None
        if project_id is None and isinstance(data, Mapping):
            # project:* payloads are the project itself
            if str(body.get("event_name") or "").startswith("project:"):
                project_id = data.get("id")

        if user_id is None or project_id is None:
            logger.debug("Webhook body without a routable channel dropped: %r", body)
            return 0

        envelope: Envelope = {"event_name": body.get("event_name"), "event_data": dict(data)}
        return self.publish(channel_key(user_id, project_id), envelope)

    def publish_threadsafe(self, loop: asyncio.AbstractEventLoop, body: Mapping[str, Any]) -> None:
        """Deliver a webhook body received on another thread onto the loop."""
        loop.call_soon_threadsafe(self.publish_webhook, body)
