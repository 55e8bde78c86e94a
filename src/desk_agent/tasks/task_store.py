# src/desk_agent/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from .task_models import Task

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class TaskStore:
    """
    JSON task store: the whole task list lives in one file as a JSON array.

    Reads and writes always cover the full array. Writes go to a temp file first and are
    swapped in with os.replace, so a reader never sees a half-written file.

    Mutations:
    - mutate(fn) runs load -> fn(tasks) -> save under one lock, so two callers updating
      different tasks back to back cannot overwrite each other's change.
    - callers must not keep a loaded list across an await and save it later;
      re-enter mutate() instead.
    """

    def __init__(self, path: str | Path = "tasks.json") -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        logger.info("TaskStore ready path=%s total=%s", self._path, len(self.load()))

    @property
    def path(self) -> Path:
        return self._path

    # ---- public API ----

    def load(self) -> list[Task]:
        """Return all tasks; an absent or unreadable file yields an empty list."""
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to read task file %s", self._path)
            return []

        if not isinstance(data, list):
            logger.warning("Task file %s does not hold a JSON array; ignoring", self._path)
            return []

        tasks: list[Task] = []
        for raw in data:
            if not isinstance(raw, dict):
                continue
            task = Task.from_dict(raw)
            if not task.id:
                logger.warning("Skipping task record without id: %r", raw)
                continue
            tasks.append(task)
        return tasks

    def save(self, tasks: list[Task]) -> bool:
        """Overwrite the whole file. Returns False (and logs) on failure."""
        with self._lock:
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                payload = json.dumps([t.to_dict() for t in tasks], ensure_ascii=False, indent=2)
                tmp.write_text(payload, "utf-8")
                os.replace(tmp, self._path)
                return True
            except (OSError, TypeError, ValueError):
                logger.exception("Failed to write task file %s", self._path)
                with contextlib.suppress(OSError):
                    tmp.unlink()
                return False

    def mutate(self, fn: Callable[[list[Task]], _T]) -> tuple[_T, bool]:
        """
        Serialized read-modify-write.

        fn receives the freshly loaded list and may change it in place.
        Returns (fn's result, whether the save succeeded).
        """
        with self._lock:
            tasks = self.load()
            result = fn(tasks)
            saved = self.save(tasks)
            return result, saved

    def get(self, task_id: str) -> Task | None:
        for task in self.load():
            if task.id == task_id:
                return task
        return None

    def replace_all(self, tasks: list[Task]) -> bool:
        """Overwrite the store with another task list (used by sync pull)."""
        seen: set[str] = set()
        unique: list[Task] = []
        for task in tasks:
            if not task.id or task.id in seen:
                logger.warning("Dropping task with missing/duplicate id=%r", task.id)
                continue
            seen.add(task.id)
            unique.append(task)
        return self.save(unique)
