# src/desk_agent/tasks/timer_registry.py

from __future__ import annotations

"""
Timer registry.

In-memory map task id -> live timer, owned by one TaskScheduler.

- one-shot timers (reminder / scheduled) are loop.call_later handles that remove
  themselves from the map right before invoking the callback;
- repeating timers (interval) are asyncio tasks ticking at a fixed rate until disarmed.

Nothing here is persisted: the map is rebuilt from the task store at startup.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from .task_models import Task, utc_now

logger = logging.getLogger(__name__)

FireCallback = Callable[[Task], None]


class TimerKind(StrEnum):
    ONE_SHOT = "one_shot"
    REPEATING = "repeating"


@dataclass(slots=True)
class _TimerEntry:
    kind: TimerKind
    handle: asyncio.TimerHandle | asyncio.Task[None]

    def cancel(self) -> None:
        self.handle.cancel()


class TimerRegistry:
    def __init__(
        self,
        on_fire: FireCallback,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._on_fire = on_fire
        self._clock = clock
        self._timers: dict[str, _TimerEntry] = {}

    def __len__(self) -> int:
        return len(self._timers)

    def is_armed(self, task_id: str) -> bool:
        return task_id in self._timers

    def kind_of(self, task_id: str) -> TimerKind | None:
        entry = self._timers.get(task_id)
        return entry.kind if entry is not None else None

    def armed_ids(self) -> list[str]:
        return list(self._timers)

    def arm(self, task: Task) -> bool:
        """
        (Re)arm the timer for task. Always disarms first, so at most one timer exists per id.

        Returns True if a timer is live afterwards. Must be called on the event loop thread.
        """
        self.disarm(task.id)

        if not task.enabled:
            return False

        task_type = task.task_type
        if task_type is None:
            logger.warning("Not arming task %s: unknown type %r", task.id, task.type)
            return False

        loop = asyncio.get_running_loop()

        if task_type.is_one_shot:
            trigger = task.trigger_datetime
            if trigger is None:
                logger.warning("Not arming task %s: invalid triggerAt %r", task.id, task.trigger_at)
                return False

            delay = (trigger - self._clock()).total_seconds()
            if delay <= 0:
                # Missed one-shot triggers are not fired retroactively.
                logger.debug("Task %s trigger %s already passed; not arming", task.id, task.trigger_at)
                return False

            handle = loop.call_later(delay, self._fire_once, task)
            self._timers[task.id] = _TimerEntry(TimerKind.ONE_SHOT, handle)
            logger.debug("Armed one-shot task=%s in %.3fs", task.id, delay)
            return True

        period = task.interval_seconds
        if period is None:
            logger.warning(
                "Not arming task %s: invalid intervalMinutes %r", task.id, task.interval_minutes
            )
            return False

        runner = loop.create_task(self._repeat(task, period), name=f"interval-timer-{task.id}")
        self._timers[task.id] = _TimerEntry(TimerKind.REPEATING, runner)
        logger.debug("Armed repeating task=%s every %.3fs", task.id, period)
        return True

    def disarm(self, task_id: str) -> bool:
        """Cancel and forget the timer for task_id. Safe to call when none exists."""
        entry = self._timers.pop(task_id, None)
        if entry is None:
            return False
        entry.cancel()
        logger.debug("Disarmed task=%s (%s)", task_id, entry.kind.value)
        return True

    def disarm_all(self) -> None:
        for task_id in list(self._timers):
            self.disarm(task_id)

    # ---- internals ----

    def _fire_once(self, task: Task) -> None:
        self._timers.pop(task.id, None)
        self._invoke(task)

    async def _repeat(self, task: Task, period: float) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time() + period
        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            next_at += period
            self._invoke(task)

    def _invoke(self, task: Task) -> None:
        try:
            self._on_fire(task)
        except Exception:
            logger.exception("Timer callback failed task=%s", task.id)
