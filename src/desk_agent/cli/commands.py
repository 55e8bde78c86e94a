# src/desk_agent/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable
from typing import cast

from ..core.chat import clear_history
from ..core.state import AppState
from ..tasks.task_api import (
    describe_task,
    interval_payload,
    parse_minutes,
    parse_when,
    reminder_payload,
    scheduled_payload,
)
from ..tasks.task_models import ExecutionStatus, to_iso

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

# Waiting on a run-now covers the full retry window of the executor.
RUN_NOW_TIMEOUT_SECONDS = 300.0


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /task, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()

TASK_USAGE = (
    "Task commands:\n"
    "  /task list\n"
    "  /task add reminder <when> <message>\n"
    "  /task add scheduled <when> <prompt>\n"
    "  /task add interval <minutes> <prompt>\n"
    "  /task toggle <id> | /task delete <id> | /task run <id>\n"
    "  /task edit <id> <name|title|message|prompt|when|interval|notify> <value>\n"
    "  /task sync push | /task sync pull\n"
    "  <when>: ISO 8601 time or an offset like 30s, 10m, 2h, 1d"
)


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    provider = state.providers.get_active_provider()
    model = state.providers.get_active_model() or "(none)"
    tasks = state.task_store.load()
    enabled = sum(1 for t in tasks if t.enabled)
    armed = len(state.scheduler.timers)
    hist = "ON" if state.save_history else "OFF"
    return (
        "Status:\n"
        f"  Provider: {provider.name if provider else '(not configured)'}\n"
        f"  Model: {model}\n"
        f"  Tasks: {len(tasks)} total, {enabled} enabled, {armed} armed\n"
        f"  Dialog history: {hist}"
    )


def cmd_clear(state: AppState, args: list[str]) -> str:
    removed = clear_history(state)
    return f"Conversation cleared ({removed} messages)."


def _task_list(state: AppState) -> str:
    tasks = state.scheduler.list_tasks()
    if not tasks:
        return "No tasks."
    lines = [f"Tasks ({len(tasks)}):"]
    for t in tasks:
        lines.append("  " + describe_task(t, armed=state.scheduler.is_armed(t.id)))
    return "\n".join(lines)


def _task_add(state: AppState, args: list[str]) -> str:
    if len(args) < 3:
        return TASK_USAGE

    kind, when, text = args[0].lower(), args[1], " ".join(args[2:])
    try:
        if kind == "reminder":
            payload = reminder_payload(when, text)
        elif kind == "scheduled":
            payload = scheduled_payload(when, text)
        elif kind == "interval":
            payload = interval_payload(when, text)
        else:
            return f"Unknown task type: {kind}. Use reminder | scheduled | interval."
        task = state.call(state.scheduler.add(payload))
    except ValueError as e:
        return f"Invalid task: {e}"

    return "Task created: " + describe_task(task, armed=state.scheduler.is_armed(task.id))


_EDIT_FIELDS = {
    "name": "name",
    "title": "title",
    "message": "message",
    "prompt": "prompt",
    "when": "triggerAt",
    "interval": "intervalMinutes",
    "notify": "notifyOnResult",
}


def _edit_value(field: str, raw: str) -> object:
    if field == "when":
        return to_iso(parse_when(raw))
    if field == "interval":
        return parse_minutes(raw)
    if field == "notify":
        flag = raw.lower()
        if flag not in ("on", "off", "true", "false", "yes", "no"):
            raise ValueError(f"notify expects on/off, got {raw!r}")
        return flag in ("on", "true", "yes")
    return raw


def _task_edit(state: AppState, args: list[str]) -> str:
    if len(args) < 3:
        return "Usage: /task edit <id> <" + "|".join(_EDIT_FIELDS) + "> <value>"

    task_id, field, raw = args[0], args[1].lower(), " ".join(args[2:])
    if field not in _EDIT_FIELDS:
        return f"Unknown field: {field}. Use one of: {', '.join(_EDIT_FIELDS)}."

    try:
        value = _edit_value(field, raw)
        task = state.call(state.scheduler.update({"id": task_id, _EDIT_FIELDS[field]: value}))
    except ValueError as e:
        return f"Invalid task: {e}"

    if task is None:
        return f"No task with id {task_id}."
    return "Task updated: " + describe_task(task, armed=state.scheduler.is_armed(task.id))


def _task_sync(state: AppState, args: list[str]) -> str:
    if state.sync is None:
        return "Sync is not configured (set DESK_SYNC_SERVER_URL and DESK_SYNC_TOKEN)."

    sub = args[0].lower() if args else ""
    if sub == "push":
        ok = state.call(state.sync.push_tasks(state.task_store.load()))
        return "Tasks pushed." if ok else "Push failed (see log)."

    if sub == "pull":
        tasks = state.call(state.sync.pull_tasks())
        if tasks is None:
            return "Pull failed (see log)."
        if not state.task_store.replace_all(tasks):
            return "Pulled tasks could not be saved (see log)."
        armed = state.call(state.scheduler.reload())
        return f"Pulled {len(tasks)} tasks ({armed} armed)."

    return "Usage: /task sync push | /task sync pull"


def cmd_task(
    state: AppState,
    args: list[str],
    emit: CommandEmitter | None = None,
) -> str:
    if not args or args[0].lower() in ("list", "ls"):
        return _task_list(state)

    sub, rest = args[0].lower(), args[1:]

    if sub == "add":
        return _task_add(state, rest)

    if sub == "sync":
        return _task_sync(state, rest)

    if sub == "edit":
        return _task_edit(state, rest)

    if sub in ("toggle", "delete", "rm", "run") and not rest:
        return f"Usage: /task {sub} <id>"

    if sub == "toggle":
        task = state.call(state.scheduler.toggle(rest[0]))
        if task is None:
            return f"No task with id {rest[0]}."
        return f"Task {task.id} is now {'enabled' if task.enabled else 'disabled'}."

    if sub in ("delete", "rm"):
        removed = state.call(state.scheduler.delete(rest[0]))
        return f"Task {rest[0]} deleted." if removed else f"No task with id {rest[0]}."

    if sub == "run":
        if emit:
            with contextlib.suppress(Exception):
                emit(f"[TASK] Running {rest[0]}...")
        result = state.call(state.scheduler.run_now(rest[0]), timeout=RUN_NOW_TIMEOUT_SECONDS)
        if result is None:
            return f"No task with id {rest[0]}."
        if result.status is ExecutionStatus.OK:
            return f"Task {rest[0]} finished."
        return f"Task {rest[0]} did not complete ({result.status.value}): {result.error or ''}".rstrip(": ")

    return TASK_USAGE


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show provider, model and task counts.")
registry.register("clear", cmd_clear, help_text="Forget the current conversation.")
registry.register("task", cmd_task, help_text="Manage tasks: /task list | add | edit | toggle | delete | run | sync.", aliases=["tasks"])
