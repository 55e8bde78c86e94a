# tests/test_task_api.py

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta

import pytest

from desk_agent.tasks.task_api import (
    describe_task,
    interval_payload,
    parse_when,
    reminder_payload,
    scheduled_payload,
)
from desk_agent.tasks.task_models import Task, validate_task

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("raw", "delta"),
    [
        ("30s", timedelta(seconds=30)),
        ("10m", timedelta(minutes=10)),
        ("+2h", timedelta(hours=2)),
        ("1.5H", timedelta(minutes=90)),
        ("1d", timedelta(days=1)),
    ],
)
def test_parse_when_relative(raw: str, delta: timedelta) -> None:
    assert parse_when(raw, now=NOW) == NOW + delta


@pytest.fixture()
def shanghai_tz(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("TZ", "Asia/Shanghai")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


def test_parse_when_iso_with_offset() -> None:
    assert parse_when("2030-01-02T08:30:00Z") == datetime(2030, 1, 2, 8, 30, tzinfo=UTC)
    assert parse_when("2030-01-02T08:30:00+02:00") == datetime(2030, 1, 2, 6, 30, tzinfo=UTC)


def test_parse_when_naive_is_local_time(shanghai_tz) -> None:
    dt = parse_when("2026-01-05T09:00")
    assert dt == datetime(2026, 1, 5, 1, 0, tzinfo=UTC)
    assert dt.astimezone(UTC).hour == 1


def test_naive_trigger_from_sync_is_local_time(shanghai_tz) -> None:
    task = Task(id="x", type="reminder", trigger_at="2025-01-01 12:00", message="m")
    assert task.trigger_datetime == datetime(2025, 1, 1, 4, 0, tzinfo=UTC)
    assert reminder_payload("2025-01-01T12:00", "m")["triggerAt"] == "2025-01-01T04:00:00.000Z"


@pytest.mark.parametrize("raw", ["", "soon", "10x", "tomorrow at 9"])
def test_parse_when_rejects_garbage(raw: str) -> None:
    with pytest.raises(ValueError):
        parse_when(raw, now=NOW)


def test_reminder_payload_is_a_valid_task() -> None:
    payload = reminder_payload("10m", "  take a break ", now=NOW)
    assert payload == {
        "type": "reminder",
        "name": "take a break",
        "title": "Reminder",
        "message": "take a break",
        "triggerAt": "2030-01-01T12:10:00.000Z",
    }
    validate_task(Task.from_dict({"id": "x", **payload}))


def test_scheduled_payload_notifies_by_default() -> None:
    payload = scheduled_payload("2030-03-01T07:00:00Z", "morning digest", now=NOW)
    assert payload["notifyOnResult"] is True
    assert payload["triggerAt"] == "2030-03-01T07:00:00.000Z"
    assert payload["prompt"] == "morning digest"


def test_interval_payload_validates_minutes() -> None:
    assert interval_payload("15", "check")["intervalMinutes"] == 15
    assert interval_payload(0.5, "check")["intervalMinutes"] == 0.5
    with pytest.raises(ValueError):
        interval_payload("abc", "check")
    with pytest.raises(ValueError):
        interval_payload("-1", "check")


def test_describe_task() -> None:
    reminder = Task(id="r1", type="reminder", name="Stretch", trigger_at="2030-01-01T09:00:00.000Z")
    interval = Task(
        id="i1", type="interval", name="News", interval_minutes=30, enabled=False, last_run="2030-01-01T08:00:00.000Z"
    )

    assert describe_task(reminder, armed=True) == "r1 [reminder/on,armed] Stretch (at 2030-01-01T09:00:00.000Z)"
    assert describe_task(interval) == "i1 [interval/off] News (every 30m) last=2030-01-01T08:00:00.000Z"
