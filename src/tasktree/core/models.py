# src/tasktree/core/models.py

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .errors import MalformedEventError

logger = logging.getLogger(__name__)

_TASK_KEYS = {"id", "parent_id", "section_id", "child_order", "content", "updated_at"}
_SECTION_KEYS = {"id", "name", "section_order", "updated_at"}


def parse_timestamp(raw: Any) -> datetime | None:
    """
    Best-effort conversion of an `updated_at` value into an aware UTC datetime.

    Accepted inputs:
    - datetime (naive values are taken as UTC)
    - int/float epoch seconds
    - ISO-8601 strings, including a trailing "Z"

    Anything else (or unparseable text) -> None.
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, datetime):
        return raw if raw.tzinfo is not None else raw.replace(tzinfo=UTC)

    if isinstance(raw, (int, float)):
        try:
            return datetime.fromtimestamp(float(raw), tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(raw, str):
        s = raw.strip()
        if not s:
            return None
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            logger.debug("Unparseable timestamp %r", raw)
            return None
        return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)

    return None


def _opt_id(raw: Any) -> str | None:
    if raw is None:
        return None
    s = str(raw).strip()
    return s or None


def _required_id(data: Mapping[str, Any], kind: str) -> str:
    entity_id = _opt_id(data.get("id"))
    if entity_id is None:
        raise MalformedEventError(f"{kind} payload has no id")
    return entity_id


def _order(raw: Any) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


@dataclass(slots=True, frozen=True)
class Project:
    name: str
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Project:
        extra = {k: v for k, v in data.items() if k != "name"}
        return cls(name=str(data.get("name") or ""), extra=extra)


@dataclass(slots=True, frozen=True)
class Section:
    id: str
    name: str
    section_order: float
    updated_at: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Section:
        return cls(
            id=_required_id(data, "section"),
            name=str(data.get("name") or ""),
            section_order=_order(data.get("section_order")),
            updated_at=parse_timestamp(data.get("updated_at")),
            extra={k: v for k, v in data.items() if k not in _SECTION_KEYS},
        )


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    parent_id: str | None
    section_id: str | None
    child_order: float
    content: str
    updated_at: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Task:
        return cls(
            id=_required_id(data, "task"),
            parent_id=_opt_id(data.get("parent_id")),
            section_id=_opt_id(data.get("section_id")),
            child_order=_order(data.get("child_order")),
            content=str(data.get("content") or ""),
            updated_at=parse_timestamp(data.get("updated_at")),
            extra={k: v for k, v in data.items() if k not in _TASK_KEYS},
        )

    @property
    def sort_key(self) -> tuple[float, str]:
        # Sibling order: child_order first, ties broken lexically by id.
        return (self.child_order, self.id)


@dataclass(slots=True, frozen=True)
class BulkPayload:
    """What a bulk load delivers. `sections`/`tasks` default to empty."""

    project: Project | None
    sections: tuple[Section, ...] = ()
    tasks: tuple[Task, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BulkPayload:
        raw_project = data.get("project")
        project = Project.from_dict(raw_project) if isinstance(raw_project, Mapping) else None
        sections = tuple(Section.from_dict(s) for s in (data.get("sections") or ()))
        tasks = tuple(Task.from_dict(t) for t in (data.get("tasks") or ()))
        return cls(project=project, sections=sections, tasks=tasks)


# ---- snapshot (derived, immutable) ----


@dataclass(slots=True, frozen=True)
class TaskNode:
    task: Task
    children: tuple[TaskNode, ...]
    depth: int

    @property
    def id(self) -> str:
        return self.task.id

    def walk(self):
        """Yield this node and every descendant, depth-first in sibling order."""
        stack: list[TaskNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


@dataclass(slots=True, frozen=True)
class SectionView:
    section: Section
    tasks: tuple[TaskNode, ...]

    @property
    def id(self) -> str:
        return self.section.id


@dataclass(slots=True, frozen=True)
class Snapshot:
    project: Project | None
    sections: tuple[SectionView, ...]
    unsectioned: tuple[TaskNode, ...]
    # Ids the controller has marked pending-enter (rendered in a pre-transition state).
    entering: frozenset[str] = frozenset()

    def iter_nodes(self):
        for view in self.sections:
            for root in view.tasks:
                yield from root.walk()
        for root in self.unsectioned:
            yield from root.walk()

    def task_ids(self) -> set[str]:
        return {node.id for node in self.iter_nodes()}

    def section_ids(self) -> list[str]:
        return [view.id for view in self.sections]
