# src/desk_agent/tasks/task_api.py

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Any

from .task_models import Task, TaskType, parse_iso, to_iso, utc_now

_RELATIVE_RE = re.compile(r"^\+?(\d+(?:\.\d+)?)\s*([smhd])$", re.IGNORECASE)
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_when(raw: str, *, now: datetime | None = None) -> datetime:
    """
    Parse a trigger time.

    Accepts ISO 8601 ("2026-01-05T09:00:00Z"; naive values are local time) or a relative
    offset from now: "30s", "10m", "2h", "1d". Raises ValueError otherwise.
    """
    s = (raw or "").strip()
    m = _RELATIVE_RE.match(s)
    if m:
        amount = float(m.group(1))
        unit = m.group(2).lower()
        return (now or utc_now()) + timedelta(seconds=amount * _UNIT_SECONDS[unit])

    dt = parse_iso(s)
    if dt is None:
        raise ValueError(f"Cannot parse time: {raw!r} (use ISO 8601 or 10m / 2h / 1d)")
    return dt


def reminder_payload(when: str, message: str, *, name: str | None = None, now: datetime | None = None) -> dict[str, Any]:
    text = message.strip()
    return {
        "type": TaskType.REMINDER.value,
        "name": name or text[:40] or "Reminder",
        "title": name or "Reminder",
        "message": text,
        "triggerAt": to_iso(parse_when(when, now=now)),
    }


def scheduled_payload(
    when: str,
    prompt: str,
    *,
    name: str | None = None,
    notify_on_result: bool = True,
    now: datetime | None = None,
) -> dict[str, Any]:
    text = prompt.strip()
    return {
        "type": TaskType.SCHEDULED.value,
        "name": name or text[:40] or "Scheduled prompt",
        "prompt": text,
        "triggerAt": to_iso(parse_when(when, now=now)),
        "notifyOnResult": notify_on_result,
    }


def parse_minutes(raw: str | float) -> int | float:
    """Positive number of minutes; whole numbers come back as int."""
    try:
        value = float(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Interval must be a number of minutes, got {raw!r}") from e
    if not value > 0:
        raise ValueError("Interval must be positive")
    return int(value) if value.is_integer() else value


def interval_payload(
    minutes: str | float,
    prompt: str,
    *,
    name: str | None = None,
    notify_on_result: bool = True,
) -> dict[str, Any]:
    text = prompt.strip()
    return {
        "type": TaskType.INTERVAL.value,
        "name": name or text[:40] or "Interval prompt",
        "prompt": text,
        "intervalMinutes": parse_minutes(minutes),
        "notifyOnResult": notify_on_result,
    }


def describe_task(task: Task, *, armed: bool = False) -> str:
    """One-line human summary used by the console."""
    state = "on" if task.enabled else "off"
    if armed:
        state += ",armed"

    if task.task_type is TaskType.INTERVAL:
        when = f"every {task.interval_minutes}m"
    else:
        when = f"at {task.trigger_at or '?'}"

    last = f" last={task.last_run}" if task.last_run else ""
    return f"{task.id} [{task.type}/{state}] {task.name} ({when}){last}"
