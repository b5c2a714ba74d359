# src/tasktree/core/errors.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class SyncError(Exception):
    """Base class for errors raised by the sync engine."""


class NotFoundError(SyncError):
    """An update targeted an id the store does not hold."""

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} not found: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class AlreadyExistsError(SyncError):
    """An add targeted a task id the store already holds."""

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} already exists: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class MalformedEventError(SyncError):
    """A realtime payload could not be narrowed into a routable event."""


class TransportError(SyncError):
    """Non-2xx response from the HTTP transport."""

    def __init__(self, message: str, *, status: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class FailureKind(StrEnum):
    UNRECOVERABLE = "unrecoverable"  # failed and carried no entity id
    RETRY_EXHAUSTED = "retry_exhausted"  # still failed after the timed replay


@dataclass(slots=True, frozen=True)
class EventFailure:
    """What the failure-reporting callback receives."""

    kind: FailureKind
    event: Any
    error: BaseException | None
