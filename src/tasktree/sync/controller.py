# src/tasktree/sync/controller.py

"""
Sync controller.

Owns the EntityStore and serializes store mutations with render scheduling:
- every mutation is applied synchronously, then a render is requested,
- render requests are debounced (trailing window) and always render the live store,
- removals mutate the store first, then play the exit animation; renders are held
  while any exit animation is in flight and a short poll resumes them,
- additions are marked pending-enter until the render that shows them completes,
  then the renderer's enter hook runs once per add.

Per render cycle:
    IDLE -> DEBOUNCING -> FLUSHING -> (WAITING_ON_ANIMATIONS <-> FLUSHING) -> IDLE
and FLUSHING -> DEBOUNCING when a mutation lands while a render is executing.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from dataclasses import replace
from enum import StrEnum
from typing import Any

from ..core.models import BulkPayload, Section, Snapshot, Task
from ..core.ports import Renderer, TimerHandle, Timers
from ..store.entity_store import EntityStore

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 150.0
DEFAULT_ANIMATION_POLL_MS = 50.0


class RenderState(StrEnum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    FLUSHING = "flushing"
    WAITING_ON_ANIMATIONS = "waiting_on_animations"


class RemovalState(StrEnum):
    REMOVING = "removing"
    REMOVED = "removed"


class SyncController:
    def __init__(
        self,
        renderer: Renderer,
        *,
        timers: Timers,
        store: EntityStore | None = None,
        debounce_ms: float = DEFAULT_DEBOUNCE_MS,
        animation_poll_ms: float = DEFAULT_ANIMATION_POLL_MS,
    ) -> None:
        self._renderer = renderer
        self._timers = timers
        self._store = store if store is not None else EntityStore()
        self._debounce_ms = max(0.0, float(debounce_ms))
        self._poll_ms = max(1.0, float(animation_poll_ms))

        self._state = RenderState.IDLE
        self._debounce: TimerHandle | None = None
        self._poll: TimerHandle | None = None

        # A mutation not yet reflected by a completed render.
        self._dirty = False
        self._generation = 0
        self._rendered_generation = 0
        self._render_count = 0

        self._animations = 0
        self._removals: dict[str, RemovalState] = {}
        # dict as an insertion-ordered set
        self._pending_enter: dict[str, None] = {}

        self._disposed = False

    # ---- introspection ----

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def state(self) -> RenderState:
        return self._state

    @property
    def animations_in_flight(self) -> int:
        return self._animations

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def rendered_generation(self) -> int:
        return self._rendered_generation

    @property
    def render_count(self) -> int:
        return self._render_count

    @property
    def pending_enter(self) -> frozenset[str]:
        return frozenset(self._pending_enter)

    def removal_state(self, entity_id: str) -> RemovalState | None:
        return self._removals.get(entity_id)

    def snapshot(self) -> Snapshot:
        return replace(self._store.snapshot(), entering=frozenset(self._pending_enter))

    # ---- mutation API ----

    def bulk_load(self, payload: BulkPayload | Mapping[str, Any], *, immediate: bool = False) -> None:
        """Replace the store wholesale. `immediate=True` skips the debounce (first paint)."""
        self._store.organize(payload)
        self._changed(immediate=immediate)

    def add_task(self, task: Task) -> None:
        self._store.add_task(task)
        self._pending_enter[task.id] = None
        self._changed()

    def update_task(self, task: Task) -> bool:
        if not self._store.update_task(task):
            return False
        self._changed()
        return True

    def remove_task(self, task_id: str) -> list[str]:
        if not self._store.has_task(task_id):
            return []

        handle = self._renderer.find_element(task_id)
        # Store first: later events must never see an entity that is only visually present.
        removed = self._store.remove_task(task_id)
        for rid in removed:
            self._pending_enter.pop(rid, None)

        self._begin_exit(task_id, handle)
        self._changed()
        return removed

    def add_section(self, section: Section) -> None:
        existed = self._store.has_section(section.id)
        self._store.add_section(section)
        # An upsert of a known section is not an entry.
        if not existed:
            self._pending_enter[section.id] = None
        self._changed()

    def update_section(self, section: Section) -> bool:
        if not self._store.update_section(section):
            return False
        self._changed()
        return True

    def remove_section(self, section_id: str) -> list[str]:
        if not self._store.has_section(section_id):
            return []

        handle = self._renderer.find_element(section_id)
        removed = self._store.remove_section(section_id)
        self._pending_enter.pop(section_id, None)
        for rid in removed:
            self._pending_enter.pop(rid, None)

        self._begin_exit(section_id, handle)
        self._changed()
        return removed

    def update_project_name(self, name: str) -> None:
        self._store.update_project_name(name)
        self._changed()

    # ---- animation lifecycle ----

    def complete_removal(self, entity_id: str) -> None:
        """
        Mark an exit animation finished (REMOVING -> REMOVED).

        The renderer's `done` callback calls this. Calls for ids that are not
        currently REMOVING are ignored.
        """
        if self._removals.get(entity_id) is not RemovalState.REMOVING:
            logger.debug("complete_removal ignored id=%s state=%s", entity_id, self._removals.get(entity_id))
            return
        self._removals[entity_id] = RemovalState.REMOVED
        self._animations = max(0, self._animations - 1)
        logger.debug("Exit animation done id=%s in_flight=%d", entity_id, self._animations)

    def _begin_exit(self, entity_id: str, handle: Any) -> None:
        hook = getattr(self._renderer, "on_remove", None)
        if handle is None or not callable(hook):
            return
        if self._removals.get(entity_id) is RemovalState.REMOVING:
            return

        self._removals[entity_id] = RemovalState.REMOVING
        self._animations += 1
        self._cancel_debounce()
        logger.debug("Exit animation start id=%s in_flight=%d", entity_id, self._animations)

        try:
            hook(handle, lambda: self.complete_removal(entity_id))
        except Exception:
            logger.exception("on_remove hook failed id=%s", entity_id)
            self.complete_removal(entity_id)

    # ---- scheduling ----

    def _changed(self, *, immediate: bool = False) -> None:
        self._generation += 1
        self._dirty = True
        self._request_render(immediate=immediate)

    def _request_render(self, *, immediate: bool = False) -> None:
        if self._disposed:
            return

        # The running flush re-checks _dirty when it ends.
        if self._state is RenderState.FLUSHING:
            return

        if self._animations > 0 or self._poll is not None:
            self._hold()
            return

        self._cancel_debounce()
        if immediate:
            self._flush()
            return

        self._state = RenderState.DEBOUNCING
        self._debounce = self._timers.call_later(self._debounce_ms, self._on_debounce)

    def _hold(self) -> None:
        self._cancel_debounce()
        self._state = RenderState.WAITING_ON_ANIMATIONS
        if self._poll is None:
            self._poll = self._timers.call_later(self._poll_ms, self._on_poll)

    def _on_debounce(self) -> None:
        self._debounce = None
        if self._disposed:
            return
        if self._animations > 0:
            self._hold()
            return
        if not self._dirty:
            self._state = RenderState.IDLE
            return
        self._flush()

    def _on_poll(self) -> None:
        self._poll = None
        if self._disposed:
            return
        if self._animations > 0:
            self._poll = self._timers.call_later(self._poll_ms, self._on_poll)
            return
        if not self._dirty:
            self._state = RenderState.IDLE
            return
        self._flush()

    def _cancel_debounce(self) -> None:
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None

    # ---- render pass ----

    def _flush(self) -> None:
        self._state = RenderState.FLUSHING
        self._dirty = False
        generation = self._generation
        entering = tuple(self._pending_enter)
        snapshot = replace(self._store.snapshot(), entering=frozenset(entering))

        try:
            result = self._renderer.render(snapshot)
        except Exception:
            logger.exception("Render failed generation=%d", generation)
            self._finish_flush(generation, entering, ok=False)
            return

        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            future.add_done_callback(
                lambda f: self._on_render_done(f, generation, entering)
            )
            return

        self._finish_flush(generation, entering, ok=True)

    def _on_render_done(self, future: asyncio.Future, generation: int, entering: tuple[str, ...]) -> None:
        ok = True
        if future.cancelled():
            logger.warning("Render cancelled generation=%d", generation)
            ok = False
        elif future.exception() is not None:
            logger.error("Render failed generation=%d", generation, exc_info=future.exception())
            ok = False
        self._finish_flush(generation, entering, ok=ok)

    def _finish_flush(self, generation: int, entering: tuple[str, ...], *, ok: bool) -> None:
        if self._disposed:
            return

        if ok:
            self._rendered_generation = max(self._rendered_generation, generation)
            self._render_count += 1
            logger.debug("Rendered generation=%d entering=%d", generation, len(entering))
            self._run_enter_hooks(entering)
            self._drop_finished_removals()
            self._notify_tree_change()

        self._state = RenderState.IDLE
        if self._dirty:
            # A mutation landed mid-flush: start a follow-up cycle.
            self._request_render()

    def _run_enter_hooks(self, entering: tuple[str, ...]) -> None:
        hook = getattr(self._renderer, "on_add", None)
        for entity_id in entering:
            if entity_id not in self._pending_enter:
                # removed while the render was executing
                continue
            del self._pending_enter[entity_id]
            if not callable(hook):
                continue
            handle = self._renderer.find_element(entity_id)
            if handle is None:
                continue
            try:
                hook(handle, entity_id)
            except Exception:
                logger.exception("on_add hook failed id=%s", entity_id)

    def _drop_finished_removals(self) -> None:
        done = [eid for eid, st in self._removals.items() if st is RemovalState.REMOVED]
        for eid in done:
            del self._removals[eid]

    def _notify_tree_change(self) -> None:
        hook = getattr(self._renderer, "on_tree_change", None)
        if not callable(hook):
            return
        try:
            hook()
        except Exception:
            logger.exception("on_tree_change hook failed")

    # ---- teardown ----

    def dispose(self) -> None:
        """Cancel timers; late callbacks become no-ops."""
        self._disposed = True
        self._cancel_debounce()
        if self._poll is not None:
            self._poll.cancel()
            self._poll = None
        self._state = RenderState.IDLE
        self._pending_enter.clear()
        self._removals.clear()
        self._animations = 0
