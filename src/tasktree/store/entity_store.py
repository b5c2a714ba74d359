# src/tasktree/store/entity_store.py

from __future__ import annotations

import logging
from collections import defaultdict, deque
from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import Any

from ..core.errors import AlreadyExistsError, NotFoundError
from ..core.models import (
    BulkPayload,
    Project,
    Section,
    SectionView,
    Snapshot,
    Task,
    TaskNode,
)

logger = logging.getLogger(__name__)


def _is_stale(incoming: Any, stored: Any) -> bool:
    # Strictly earlier -> stale. Equal applies. Missing timestamps always apply.
    if incoming is None or stored is None:
        return False
    return incoming < stored


class EntityStore:
    """
    Normalized in-memory store: one Project header, Sections and Tasks by id.

    Records are immutable; every mutation replaces the stored object, so snapshots
    never alias state that a later mutation could change.

    Ownership:
    - exactly one SyncController owns and mutates a store
    - no locking (single-threaded event loop)
    """

    def __init__(self) -> None:
        self._project: Project | None = None
        self._sections: dict[str, Section] = {}
        self._tasks: dict[str, Task] = {}

    # ---- read helpers ----

    @property
    def project(self) -> Project | None:
        return self._project

    def get_task(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def get_section(self, section_id: str) -> Section | None:
        return self._sections.get(section_id)

    def has_task(self, task_id: str) -> bool:
        return task_id in self._tasks

    def has_section(self, section_id: str) -> bool:
        return section_id in self._sections

    def count_tasks(self) -> int:
        return len(self._tasks)

    def count_sections(self) -> int:
        return len(self._sections)

    # ---- bulk load ----

    def organize(self, payload: BulkPayload | Mapping[str, Any]) -> None:
        """
        Replace everything from a bulk payload.

        Bulk load is authoritative: no staleness check applies.
        """
        if not isinstance(payload, BulkPayload):
            payload = BulkPayload.from_dict(payload)

        self._project = payload.project
        self._sections = {s.id: s for s in payload.sections}
        self._tasks = {t.id: t for t in payload.tasks}
        logger.info(
            "Store organized project=%r sections=%d tasks=%d",
            self._project.name if self._project else None,
            len(self._sections),
            len(self._tasks),
        )

    # ---- tasks ----

    def add_task(self, task: Task) -> None:
        if task.id in self._tasks:
            raise AlreadyExistsError("task", task.id)
        self._tasks[task.id] = task
        logger.debug("Task added id=%s parent=%s section=%s", task.id, task.parent_id, task.section_id)

    def update_task(self, task: Task) -> bool:
        """
        Replace a stored task unless the incoming one is stale.

        Returns True if applied, False if skipped as stale.
        """
        stored = self._tasks.get(task.id)
        if stored is None:
            raise NotFoundError("task", task.id)

        if _is_stale(task.updated_at, stored.updated_at):
            logger.info(
                "Stale task update ignored id=%s incoming=%s stored=%s",
                task.id,
                task.updated_at,
                stored.updated_at,
            )
            return False

        self._tasks[task.id] = task
        logger.debug("Task updated id=%s", task.id)
        return True

    def remove_task(self, task_id: str) -> list[str]:
        """
        Remove a task and its whole subtree.

        Breadth-first over the live id->task mapping; the visited set bounds the walk
        even if the parent_id graph is malformed.
        Returns removed ids in visit order (empty if the task was absent).
        """
        if task_id not in self._tasks:
            return []

        children_of: dict[str, list[str]] = defaultdict(list)
        for t in self._tasks.values():
            if t.parent_id is not None:
                children_of[t.parent_id].append(t.id)

        removed: list[str] = []
        visited: set[str] = {task_id}
        queue: deque[str] = deque([task_id])
        while queue:
            current = queue.popleft()
            removed.append(current)
            for child_id in children_of.get(current, ()):
                if child_id not in visited:
                    visited.add(child_id)
                    queue.append(child_id)

        for rid in removed:
            self._tasks.pop(rid, None)

        logger.debug("Task removed id=%s cascade=%d", task_id, len(removed))
        return removed

    # ---- sections ----

    def add_section(self, section: Section) -> None:
        # Upsert: duplicates overwrite unconditionally.
        self._sections[section.id] = section
        logger.debug("Section upserted id=%s", section.id)

    def update_section(self, section: Section) -> bool:
        stored = self._sections.get(section.id)
        if stored is None:
            raise NotFoundError("section", section.id)

        if _is_stale(section.updated_at, stored.updated_at):
            logger.info(
                "Stale section update ignored id=%s incoming=%s stored=%s",
                section.id,
                section.updated_at,
                stored.updated_at,
            )
            return False

        self._sections[section.id] = section
        logger.debug("Section updated id=%s", section.id)
        return True

    def remove_section(self, section_id: str) -> list[str]:
        """
        Remove a section together with its root tasks (and their subtrees).

        Only root tasks carrying this section_id are cascaded. A nested task whose
        section_id disagrees with its ancestors is not reconciled.
        """
        if section_id not in self._sections:
            return []

        roots = [
            t.id
            for t in self._tasks.values()
            if t.section_id == section_id and t.parent_id is None
        ]
        removed: list[str] = []
        for root_id in roots:
            removed.extend(self.remove_task(root_id))

        del self._sections[section_id]
        logger.debug("Section removed id=%s tasks=%d", section_id, len(removed))
        return removed

    # ---- project ----

    def update_project_name(self, name: str) -> None:
        if self._project is None:
            self._project = Project(name=name)
        else:
            self._project = replace(self._project, name=name)
        logger.debug("Project renamed to %r", name)

    # ---- snapshot ----

    def snapshot(self) -> Snapshot:
        """
        Build a fresh ordered tree.

        Steps:
        - link every task to its parent when the parent is stored (else it is a root)
        - sort each sibling list by (child_order, id)
        - assign depths top-down with a worklist
        - freeze nodes bottom-up
        - group roots by section_id into sections (sorted by section_order);
          roots without a known section go to `unsectioned`
        """
        tasks = self._tasks

        children_of: dict[str, list[Task]] = defaultdict(list)
        roots: list[Task] = []
        for t in tasks.values():
            if t.parent_id is not None and t.parent_id in tasks:
                children_of[t.parent_id].append(t)
            else:
                roots.append(t)

        for siblings in children_of.values():
            siblings.sort(key=lambda t: t.sort_key)
        roots.sort(key=lambda t: t.sort_key)

        # Top-down: BFS order + depth. Tasks unreachable from a root (parent cycles) never enter.
        depth: dict[str, int] = {}
        order: list[Task] = []
        queue: deque[Task] = deque()
        for r in roots:
            depth[r.id] = 0
            queue.append(r)
        while queue:
            current = queue.popleft()
            order.append(current)
            for child in children_of.get(current.id, ()):
                if child.id in depth:
                    continue
                depth[child.id] = depth[current.id] + 1
                queue.append(child)

        # Bottom-up: children are always frozen before their parent.
        nodes: dict[str, TaskNode] = {}
        for t in reversed(order):
            kids = tuple(nodes[c.id] for c in children_of.get(t.id, ()) if c.id in nodes)
            nodes[t.id] = TaskNode(task=t, children=kids, depth=depth[t.id])

        by_section: dict[str, list[TaskNode]] = defaultdict(list)
        unsectioned: list[TaskNode] = []
        for r in roots:
            node = nodes[r.id]
            if r.section_id is not None and r.section_id in self._sections:
                by_section[r.section_id].append(node)
            else:
                unsectioned.append(node)

        sections = sorted(self._sections.values(), key=lambda s: (s.section_order, s.id))
        views = tuple(
            SectionView(section=s, tasks=tuple(by_section.get(s.id, ()))) for s in sections
        )
        return Snapshot(project=self._project, sections=views, unsectioned=tuple(unsectioned))

    def iter_tasks(self) -> Iterable[Task]:
        return list(self._tasks.values())
