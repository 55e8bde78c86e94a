# src/desk_agent/tasks/task_models.py

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class TaskType(StrEnum):
    """
    Task variant.

    - reminder:  one-shot, shows a notification at trigger_at
    - scheduled: one-shot, runs the prompt at trigger_at
    - interval:  repeating, runs the prompt every interval_minutes
    """

    REMINDER = "reminder"
    SCHEDULED = "scheduled"
    INTERVAL = "interval"

    @classmethod
    def from_raw(cls, raw: Any) -> TaskType | None:
        try:
            return cls(str(raw))
        except ValueError:
            return None

    @property
    def is_one_shot(self) -> bool:
        return self is not TaskType.INTERVAL


class ExecutionStatus(StrEnum):
    OK = "ok"
    CONFIG_ERROR = "config_error"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True, frozen=True)
class ExecutionResult:
    status: ExecutionStatus
    text: str = ""
    error: str | None = None

    @property
    def counts_as_run(self) -> bool:
        """Whether last_run should advance for this outcome."""
        return self.status in (ExecutionStatus.OK, ExecutionStatus.FAILED)


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(raw: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp; naive values are local time. Bad input -> None."""
    if not raw:
        return None
    s = str(raw).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        # Same reading as a wall-clock time typed by the user.
        dt = dt.astimezone()
    return dt


# JSON key (camelCase, as stored on disk) -> attribute name
_FIELD_KEYS: dict[str, str] = {
    "id": "id",
    "type": "type",
    "name": "name",
    "enabled": "enabled",
    "triggerAt": "trigger_at",
    "intervalMinutes": "interval_minutes",
    "prompt": "prompt",
    "message": "message",
    "title": "title",
    "notifyOnResult": "notify_on_result",
    "lastRun": "last_run",
    "createdAt": "created_at",
    "firingAt": "firing_at",
}


@dataclass(slots=True)
class Task:
    id: str
    type: str
    name: str = ""
    enabled: bool = True

    trigger_at: str | None = None
    interval_minutes: float | None = None

    prompt: str | None = None
    message: str | None = None
    title: str | None = None
    notify_on_result: bool = False

    last_run: str | None = None
    created_at: str | None = None

    # Set while a firing is in progress; see TaskScheduler.
    firing_at: str | None = None

    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def task_type(self) -> TaskType | None:
        return TaskType.from_raw(self.type)

    @property
    def trigger_datetime(self) -> datetime | None:
        return parse_iso(self.trigger_at)

    @property
    def interval_seconds(self) -> float | None:
        if self.interval_minutes is None:
            return None
        try:
            minutes = float(self.interval_minutes)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(minutes) or minutes <= 0:
            return None
        return minutes * 60.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            attr = _FIELD_KEYS.get(key)
            if attr is None:
                extra[key] = value
            else:
                kwargs[attr] = value

        kwargs["id"] = str(kwargs.get("id") or "")
        kwargs["type"] = str(kwargs.get("type") or "")
        kwargs["name"] = str(kwargs.get("name") or "")
        kwargs["enabled"] = bool(kwargs.get("enabled", True))
        kwargs["notify_on_result"] = bool(kwargs.get("notify_on_result", False))
        return cls(**kwargs, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        for key, attr in _FIELD_KEYS.items():
            value = getattr(self, attr)
            if value is None and key not in ("id", "type"):
                continue
            out[key] = value
        return out

    def merged(self, changes: dict[str, Any]) -> Task:
        """Shallow merge of camelCase fields over this task (the id never changes)."""
        data = self.to_dict()
        data.update({k: v for k, v in changes.items() if k != "id"})
        return Task.from_dict(data)


def validate_task(task: Task) -> None:
    """Raise ValueError if the task is missing a field its type requires."""
    task_type = task.task_type
    if task_type is None:
        raise ValueError(f"unknown task type: {task.type!r}")

    if task_type.is_one_shot:
        if task.trigger_datetime is None:
            raise ValueError(f"{task_type.value} task requires a valid triggerAt")
    elif task.interval_seconds is None:
        raise ValueError("interval task requires a positive intervalMinutes")

    if task_type in (TaskType.SCHEDULED, TaskType.INTERVAL):
        if not (task.prompt or "").strip():
            raise ValueError(f"{task_type.value} task requires a prompt")
