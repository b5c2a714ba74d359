# src/tasktree/sync/events.py

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from ..core.errors import MalformedEventError
from ..core.models import Section, Task
from .controller import SyncController

logger = logging.getLogger(__name__)


class EventName(StrEnum):
    ITEM_COMPLETED = "item:completed"
    ITEM_DELETED = "item:deleted"
    ITEM_UPDATED = "item:updated"
    ITEM_ADDED = "item:added"
    ITEM_UNCOMPLETED = "item:uncompleted"
    SECTION_ARCHIVED = "section:archived"
    SECTION_DELETED = "section:deleted"
    SECTION_ADDED = "section:added"
    SECTION_UNARCHIVED = "section:unarchived"
    SECTION_UPDATED = "section:updated"
    PROJECT_UPDATED = "project:updated"


@dataclass(slots=True, frozen=True)
class TaskRemoved:
    task_id: str


@dataclass(slots=True, frozen=True)
class TaskAdded:
    task: Task


@dataclass(slots=True, frozen=True)
class TaskUpdated:
    task: Task


@dataclass(slots=True, frozen=True)
class SectionRemoved:
    section_id: str


@dataclass(slots=True, frozen=True)
class SectionAdded:
    section: Section


@dataclass(slots=True, frozen=True)
class SectionUpdated:
    section: Section


@dataclass(slots=True, frozen=True)
class ProjectRenamed:
    name: str


@dataclass(slots=True, frozen=True)
class UnknownEvent:
    event_name: str


RealtimeEvent = (
    TaskRemoved
    | TaskAdded
    | TaskUpdated
    | SectionRemoved
    | SectionAdded
    | SectionUpdated
    | ProjectRenamed
    | UnknownEvent
)


def _payload_id(data: Mapping[str, Any]) -> str:
    raw = data.get("id")
    s = str(raw).strip() if raw is not None else ""
    if not s:
        raise MalformedEventError("event_data has no id")
    return s


def parse_event(envelope: Mapping[str, Any]) -> RealtimeEvent:
    """
    Narrow a loosely-typed envelope into a RealtimeEvent.

    Unrecognized names become UnknownEvent. A recognized name whose payload cannot
    be routed raises MalformedEventError.
    """
    if not isinstance(envelope, Mapping):
        raise MalformedEventError("envelope is not an object")

    name = str(envelope.get("event_name") or "")
    data = envelope.get("event_data")

    try:
        kind = EventName(name)
    except ValueError:
        return UnknownEvent(event_name=name)

    if not isinstance(data, Mapping):
        raise MalformedEventError(f"{name}: event_data is not an object")

    if kind in (EventName.ITEM_COMPLETED, EventName.ITEM_DELETED):
        return TaskRemoved(task_id=_payload_id(data))
    if kind in (EventName.SECTION_ARCHIVED, EventName.SECTION_DELETED):
        return SectionRemoved(section_id=_payload_id(data))
    if kind == EventName.ITEM_UPDATED:
        return TaskUpdated(task=Task.from_dict(data))
    if kind in (EventName.ITEM_ADDED, EventName.ITEM_UNCOMPLETED):
        return TaskAdded(task=Task.from_dict(data))
    if kind in (EventName.SECTION_ADDED, EventName.SECTION_UNARCHIVED):
        return SectionAdded(section=Section.from_dict(data))
    if kind == EventName.SECTION_UPDATED:
        return SectionUpdated(section=Section.from_dict(data))

    # project:updated only carries the header name over.
    return ProjectRenamed(name=str(data.get("name") or ""))


def apply_event(controller: SyncController, event: RealtimeEvent) -> None:
    """Dispatch a parsed event to the controller. Store errors propagate."""
    if isinstance(event, TaskRemoved):
        controller.remove_task(event.task_id)
    elif isinstance(event, SectionRemoved):
        controller.remove_section(event.section_id)
    elif isinstance(event, TaskUpdated):
        controller.update_task(event.task)
    elif isinstance(event, TaskAdded):
        controller.add_task(event.task)
    elif isinstance(event, SectionAdded):
        controller.add_section(event.section)
    elif isinstance(event, SectionUpdated):
        controller.update_section(event.section)
    elif isinstance(event, ProjectRenamed):
        controller.update_project_name(event.name)
    else:
        logger.debug("Ignoring unknown event %r", event.event_name)


def dispatch_envelope(controller: SyncController, envelope: Mapping[str, Any]) -> None:
    """Handler wrapped by the reorder queue: parse, then apply."""
    apply_event(controller, parse_event(envelope))
