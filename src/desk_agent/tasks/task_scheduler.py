# src/desk_agent/tasks/task_scheduler.py

from __future__ import annotations

"""
Task scheduler.

Owns a TimerRegistry and drives the per-task state machine:

    idle (enabled=false, no timer)
    armed (enabled=true, timer live)
    fired (one-shot) -> enabled=false, lastRun=now, timer gone
    repeating (interval) -> lastRun=now after every tick, timer keeps running

Firing is two-phase on disk:
1) persist firingAt=now before any side effect,
2) run the action, then persist lastRun / enabled and clear firingAt.
A task found with firingAt at startup is treated as already fired, so a crash between
the two phases never leads to a second firing.

All methods must run on the scheduler's event loop.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable, Coroutine, Mapping
from datetime import datetime
from typing import Any

from ..core.events import TASKS_UPDATED
from ..core.ports import EventSink, Notifier, TaskRepo
from .task_executor import PromptExecutor, safe_notify
from .task_models import (
    ExecutionResult,
    ExecutionStatus,
    Task,
    TaskType,
    to_iso,
    utc_now,
    validate_task,
)
from .timer_registry import TimerRegistry

logger = logging.getLogger(__name__)


def new_task_id() -> str:
    return uuid.uuid4().hex[:12]


def _find(tasks: list[Task], task_id: str) -> Task | None:
    for task in tasks:
        if task.id == task_id:
            return task
    return None


class TaskScheduler:
    def __init__(
        self,
        store: TaskRepo,
        executor: PromptExecutor,
        notifier: Notifier,
        events: EventSink,
        *,
        fire_missed_on_startup: bool = False,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_task_id,
    ) -> None:
        self._store = store
        self._executor = executor
        self._notifier = notifier
        self._events = events
        self._fire_missed_on_startup = fire_missed_on_startup
        self._clock = clock
        self._id_factory = id_factory

        self.timers = TimerRegistry(self._on_timer, clock=clock)
        self._inflight: dict[str, set[asyncio.Task[Any]]] = {}

    # ---- lifecycle ----

    async def start(self) -> int:
        """Startup load: settle interrupted firings, then arm every enabled task."""
        resolved = self._resolve_interrupted_firings()
        if resolved:
            logger.warning("Resolved interrupted firings as already fired: %s", ", ".join(resolved))

        tasks = self._store.load()
        armed = 0
        for task in tasks:
            if not task.enabled:
                continue
            if self.timers.arm(task):
                armed += 1
            elif self._should_catch_up(task):
                logger.info("Firing missed one-shot task id=%s (trigger %s)", task.id, task.trigger_at)
                self._spawn_firing(task)

        logger.info(
            "Tasks loaded total=%d enabled=%d armed=%d",
            len(tasks),
            sum(1 for t in tasks if t.enabled),
            armed,
        )
        return armed

    async def stop(self) -> None:
        """Disarm everything and cancel in-flight executions."""
        self.timers.disarm_all()
        pending: list[asyncio.Task[Any]] = []
        for task_id in list(self._inflight):
            pending.extend(self._cancel_inflight(task_id))
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def reload(self) -> int:
        """Drop all timers and re-run startup load (e.g. after the task file was replaced)."""
        self.timers.disarm_all()
        return await self.start()

    async def wait_idle(self) -> None:
        """Wait until no execution is in flight."""
        while True:
            pending = [t for group in self._inflight.values() for t in group]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ---- queries ----

    def list_tasks(self) -> list[Task]:
        return self._store.load()

    def get_task(self, task_id: str) -> Task | None:
        return self._store.get(task_id)

    def is_armed(self, task_id: str) -> bool:
        return self.timers.is_armed(task_id)

    def inflight_count(self, task_id: str | None = None) -> int:
        if task_id is not None:
            return len(self._inflight.get(task_id, ()))
        return sum(len(group) for group in self._inflight.values())

    # ---- operations ----

    async def add(self, data: Mapping[str, Any] | Task) -> Task:
        """Create a task: new id, createdAt=now, enabled=true, persisted, armed."""
        task = Task.from_dict(dict(data)) if isinstance(data, Mapping) else Task.from_dict(data.to_dict())
        task.created_at = to_iso(self._clock())
        task.enabled = True
        task.firing_at = None
        validate_task(task)

        def insert(tasks: list[Task]) -> None:
            existing = {t.id for t in tasks}
            task.id = self._id_factory()
            while task.id in existing:
                task.id = self._id_factory()
            tasks.append(task)

        _, saved = self._store.mutate(insert)
        if not saved:
            logger.error("Task %s created but could not be persisted", task.id)

        self.timers.arm(task)
        logger.info("Task created id=%s name=%s type=%s", task.id, task.name, task.type)
        self._events.emit(TASKS_UPDATED)
        return task

    async def update(self, changes: Mapping[str, Any]) -> Task | None:
        """
        Merge camelCase fields into the stored task (matched by changes["id"]).

        Re-armed if the merged task is enabled, disarmed otherwise.
        Returns None if the id is unknown. Raises ValueError if the result is invalid.
        """
        task_id = str(changes.get("id") or "")

        def merge(tasks: list[Task]) -> Task | None:
            for i, task in enumerate(tasks):
                if task.id == task_id:
                    updated = task.merged(dict(changes))
                    validate_task(updated)
                    tasks[i] = updated
                    return updated
            return None

        updated, saved = self._store.mutate(merge)
        if updated is None:
            logger.warning("Update for unknown task id=%s", task_id)
            return None
        if not saved:
            logger.error("Task %s updated but could not be persisted", task_id)

        if updated.enabled:
            self.timers.arm(updated)
        else:
            self._disarm(task_id)

        logger.info("Task updated id=%s enabled=%s", task_id, updated.enabled)
        self._events.emit(TASKS_UPDATED)
        return updated

    async def toggle(self, task_id: str) -> Task | None:
        def flip(tasks: list[Task]) -> Task | None:
            task = _find(tasks, task_id)
            if task is not None:
                task.enabled = not task.enabled
            return task

        task, saved = self._store.mutate(flip)
        if task is None:
            logger.warning("Toggle for unknown task id=%s", task_id)
            return None
        if not saved:
            logger.error("Task %s toggled but could not be persisted", task_id)

        if task.enabled:
            self.timers.arm(task)
        else:
            self._disarm(task_id)

        logger.info("Task toggled id=%s enabled=%s", task_id, task.enabled)
        self._events.emit(TASKS_UPDATED)
        return task

    async def delete(self, task_id: str) -> bool:
        self._disarm(task_id)

        def remove(tasks: list[Task]) -> bool:
            before = len(tasks)
            tasks[:] = [t for t in tasks if t.id != task_id]
            return len(tasks) != before

        removed, saved = self._store.mutate(remove)
        if not saved:
            logger.error("Task %s deleted but the store could not be written", task_id)

        logger.info("Task deleted id=%s existed=%s", task_id, removed)
        self._events.emit(TASKS_UPDATED)
        return removed

    async def run_now(self, task_id: str) -> ExecutionResult | None:
        """
        Execute immediately, whatever the enabled/trigger state.

        Updates lastRun (unless the run was skipped for missing configuration or cancelled);
        never touches enabled or the timer.
        """
        task = self._store.get(task_id)
        if task is None:
            logger.warning("Run-now for unknown task id=%s", task_id)
            return None

        runner = self._track(task_id, self._run_action(task))
        await asyncio.wait({runner})
        if runner.cancelled():
            return ExecutionResult(ExecutionStatus.CANCELLED)
        result = runner.result()

        if result.counts_as_run:
            ran_at = to_iso(self._clock())

            def stamp(tasks: list[Task]) -> None:
                stored = _find(tasks, task_id)
                if stored is not None:
                    stored.last_run = ran_at

            self._store.mutate(stamp)
            self._events.emit(TASKS_UPDATED)

        return result

    # ---- firing ----

    def _on_timer(self, task: Task) -> None:
        self._spawn_firing(task)

    def _spawn_firing(self, task: Task) -> asyncio.Task[Any]:
        return self._track(task.id, self._fire(task))

    async def _fire(self, armed: Task) -> None:
        task_id = armed.id
        fired_at = to_iso(self._clock())

        def begin(tasks: list[Task]) -> Task | None:
            task = _find(tasks, task_id)
            if task is not None:
                task.firing_at = fired_at
            return task

        task, _ = self._store.mutate(begin)
        if task is None:
            logger.warning("Timer fired for task %s which is no longer stored; disarming", task_id)
            self.timers.disarm(task_id)
            return

        one_shot = task.task_type is not None and task.task_type.is_one_shot
        logger.info("Task fired id=%s name=%s type=%s", task_id, task.name, task.type)

        try:
            result = await self._run_action(task)
        except asyncio.CancelledError:
            self._store.mutate(lambda tasks: self._clear_marker(tasks, task_id))
            raise
        except Exception:
            logger.exception("Task action crashed id=%s", task_id)
            result = ExecutionResult(ExecutionStatus.FAILED, error="internal error")

        finished_at = to_iso(self._clock())

        def finish(tasks: list[Task]) -> None:
            stored = _find(tasks, task_id)
            if stored is None:
                return
            stored.firing_at = None
            if result.counts_as_run:
                stored.last_run = finished_at
            # A one-shot re-scheduled while firing keeps its new trigger armed.
            if one_shot and stored.trigger_at == task.trigger_at:
                stored.enabled = False

        _, saved = self._store.mutate(finish)
        if not saved:
            logger.error("Could not persist firing result for task %s", task_id)

        self._events.emit(TASKS_UPDATED)

    async def _run_action(self, task: Task) -> ExecutionResult:
        if task.task_type is TaskType.REMINDER:
            safe_notify(self._notifier, task.title or task.name or "Reminder", task.message or "")
            logger.info("Reminder shown id=%s name=%s", task.id, task.name)
            return ExecutionResult(ExecutionStatus.OK, text=task.message or "")
        return await self._executor.execute(task)

    # ---- helpers ----

    def _track(self, task_id: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        runner = asyncio.get_running_loop().create_task(coro, name=f"task-run-{task_id}")
        group = self._inflight.setdefault(task_id, set())
        group.add(runner)

        def _done(t: asyncio.Task[Any]) -> None:
            members = self._inflight.get(task_id)
            if members is not None:
                members.discard(t)
                if not members:
                    self._inflight.pop(task_id, None)
            if not t.cancelled() and t.exception() is not None:
                logger.error("Task run crashed id=%s", task_id, exc_info=t.exception())

        runner.add_done_callback(_done)
        return runner

    def _cancel_inflight(self, task_id: str) -> list[asyncio.Task[Any]]:
        group = list(self._inflight.get(task_id, ()))
        for runner in group:
            runner.cancel()
        if group:
            logger.info("Cancelled %d in-flight run(s) for task %s", len(group), task_id)
        return group

    def _disarm(self, task_id: str) -> None:
        self.timers.disarm(task_id)
        self._cancel_inflight(task_id)

    @staticmethod
    def _clear_marker(tasks: list[Task], task_id: str) -> None:
        stored = _find(tasks, task_id)
        if stored is not None:
            stored.firing_at = None

    def _resolve_interrupted_firings(self) -> list[str]:
        if not any(t.firing_at for t in self._store.load()):
            return []

        def resolve(tasks: list[Task]) -> list[str]:
            resolved: list[str] = []
            for task in tasks:
                if not task.firing_at:
                    continue
                task.last_run = task.firing_at
                task.firing_at = None
                if task.task_type is not None and task.task_type.is_one_shot:
                    task.enabled = False
                resolved.append(task.id)
            return resolved

        resolved, _ = self._store.mutate(resolve)
        return resolved

    def _should_catch_up(self, task: Task) -> bool:
        if not self._fire_missed_on_startup or task.last_run:
            return False
        task_type = task.task_type
        if task_type is None or not task_type.is_one_shot:
            return False
        trigger = task.trigger_datetime
        return trigger is not None and trigger <= self._clock()
