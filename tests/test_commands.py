# tests/test_commands.py

from __future__ import annotations

import json
from collections.abc import Iterator
from types import SimpleNamespace

import pytest

from desk_agent.cli.bootstrap import create_initial_state
from desk_agent.cli.commands import CommandRegistry, registry
from desk_agent.connectors.scheduler_runner import start_scheduler_in_background
from desk_agent.core.state import AppState

from .fakes import RecordingNotifier, ScriptedTransport, completion, make_llm


def _write_provider_config(settings: SimpleNamespace) -> None:
    settings.provider_config_path.write_text(
        json.dumps(
            {
                "activeProvider": "default",
                "activeModel": "test-model",
                "providers": {
                    "default": {
                        "name": "Test",
                        "baseUrl": "https://llm.test/v1",
                        "apiKey": "sk-test",
                        "models": ["test-model"],
                    }
                },
            }
        ),
        "utf-8",
    )


@pytest.fixture()
def transport() -> ScriptedTransport:
    return ScriptedTransport(completion("answer"))


@pytest.fixture()
def running_state(settings: SimpleNamespace, transport: ScriptedTransport) -> Iterator[AppState]:
    _write_provider_config(settings)
    state = create_initial_state(settings=settings, notifier=RecordingNotifier(), llm=make_llm(transport))
    runner = start_scheduler_in_background(state)
    assert runner is not None
    try:
        yield state
    finally:
        runner.stop()
        runner.join(timeout=5)


def test_command_registry_routes_2_and_3_params(settings) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}
    notes: list[str] = []

    def h2(state, args):
        called["h2"] += 1
        return "h2:" + ",".join(args)

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a", aliases=["alpha"])
    reg.register("b", h3, "b")

    assert reg.handle(None, "/a x y") == "h2:x,y"
    assert reg.handle(None, "/ALPHA") == "h2:"
    assert reg.handle(None, "/b", emit=notes.append) == "h3"
    assert called == {"h2": 2, "h3": 1}
    assert notes == ["note"]
    assert "/a - a" in reg.build_help()
    assert "alpha" not in reg.build_help()


def test_command_registry_unknown_and_non_command() -> None:
    reg = CommandRegistry()
    assert reg.handle(None, "hello") is None
    assert "Unknown command" in (reg.handle(None, "/nope") or "")
    assert "Empty command" in (reg.handle(None, "/") or "")


def test_commands_require_running_loop(settings) -> None:
    state = create_initial_state(settings=settings, notifier=RecordingNotifier())
    with pytest.raises(RuntimeError):
        registry.handle(state, "/task toggle abc")


def test_task_list_empty_and_usage(running_state: AppState) -> None:
    assert registry.handle(running_state, "/task") == "No tasks."
    assert registry.handle(running_state, "/tasks ls") == "No tasks."
    assert "Task commands" in (registry.handle(running_state, "/task frobnicate") or "")
    assert registry.handle(running_state, "/task run") == "Usage: /task run <id>"


def test_task_add_toggle_delete_flow(running_state: AppState) -> None:
    reply = registry.handle(running_state, "/task add reminder 1h drink some water") or ""
    assert reply.startswith("Task created:")

    (task,) = running_state.task_store.load()
    assert task.type == "reminder"
    assert task.message == "drink some water"
    assert task.enabled is True
    assert running_state.scheduler.is_armed(task.id)

    listing = registry.handle(running_state, "/task list") or ""
    assert task.id in listing

    assert registry.handle(running_state, f"/task toggle {task.id}") == f"Task {task.id} is now disabled."
    assert not running_state.scheduler.is_armed(task.id)
    assert running_state.task_store.get(task.id).enabled is False

    assert registry.handle(running_state, f"/task rm {task.id}") == f"Task {task.id} deleted."
    assert running_state.task_store.load() == []
    assert registry.handle(running_state, f"/task delete {task.id}") == f"No task with id {task.id}."


def test_task_add_rejects_bad_input(running_state: AppState) -> None:
    assert "Invalid task" in (registry.handle(running_state, "/task add reminder soon hello") or "")
    assert "Invalid task" in (registry.handle(running_state, "/task add interval 0 hello") or "")
    assert "Unknown task type" in (registry.handle(running_state, "/task add weekly 1h hello") or "")
    assert running_state.task_store.load() == []


def test_task_run_executes_prompt(running_state: AppState, transport: ScriptedTransport) -> None:
    registry.handle(running_state, "/task add interval 60 summarize the news")
    (task,) = running_state.task_store.load()
    results: list[dict] = []
    running_state.events.subscribe("task:result", results.append)
    progress: list[str] = []

    reply = registry.handle(running_state, f"/task run {task.id}", emit=progress.append)

    assert reply == f"Task {task.id} finished."
    assert progress == [f"[TASK] Running {task.id}..."]
    assert transport.calls == 1
    assert results[0]["result"] == "answer"
    stored = running_state.task_store.get(task.id)
    assert stored.last_run is not None
    assert stored.enabled is True


def test_task_run_unknown_id(running_state: AppState) -> None:
    assert registry.handle(running_state, "/task run nope") == "No task with id nope."


def test_status_reports_provider_and_counts(running_state: AppState) -> None:
    registry.handle(running_state, "/task add reminder 2h stretch")
    status = registry.handle(running_state, "/status") or ""
    assert "Provider: Test" in status
    assert "Model: test-model" in status
    assert "Tasks: 1 total, 1 enabled, 1 armed" in status


def test_sync_not_configured(running_state: AppState) -> None:
    assert "not configured" in (registry.handle(running_state, "/task sync push") or "")


def test_help_lists_commands(running_state: AppState) -> None:
    text = registry.handle(running_state, "/help") or ""
    for name in ("/help", "/status", "/clear", "/task"):
        assert name in text
    assert registry.handle(running_state, "/?") == text


def test_clear_forgets_console_history(running_state: AppState) -> None:
    running_state.dialog_histories["console"] = [{"role": "user", "content": "hi"}]
    assert registry.handle(running_state, "/clear") == "Conversation cleared (1 messages)."
    assert "console" not in running_state.dialog_histories


def test_task_edit_updates_fields_and_rearms(running_state: AppState) -> None:
    registry.handle(running_state, "/task add interval 30 old prompt")
    (task,) = running_state.task_store.load()

    reply = registry.handle(running_state, f"/task edit {task.id} prompt summarize the news") or ""
    assert reply.startswith("Task updated:")
    assert registry.handle(running_state, f"/task edit {task.id} interval 15") is not None
    registry.handle(running_state, f"/task edit {task.id} notify off")

    stored = running_state.task_store.get(task.id)
    assert stored.prompt == "summarize the news"
    assert stored.interval_minutes == 15
    assert stored.notify_on_result is False
    assert stored.created_at == task.created_at
    assert running_state.scheduler.is_armed(task.id)


def test_task_edit_when_sets_trigger(running_state: AppState) -> None:
    registry.handle(running_state, "/task add reminder 1h stretch")
    (task,) = running_state.task_store.load()

    registry.handle(running_state, f"/task edit {task.id} when 2099-01-01T08:00:00Z")

    assert running_state.task_store.get(task.id).trigger_at == "2099-01-01T08:00:00.000Z"
    assert running_state.scheduler.is_armed(task.id)


def test_task_edit_rejects_bad_input(running_state: AppState) -> None:
    registry.handle(running_state, "/task add interval 30 prompt")
    (task,) = running_state.task_store.load()

    assert "Usage: /task edit" in (registry.handle(running_state, f"/task edit {task.id}") or "")
    assert "Unknown field" in (registry.handle(running_state, f"/task edit {task.id} colour red") or "")
    assert "Invalid task" in (registry.handle(running_state, f"/task edit {task.id} interval 0") or "")
    assert "Invalid task" in (registry.handle(running_state, f"/task edit {task.id} notify maybe") or "")
    assert registry.handle(running_state, "/task edit nope name x") == "No task with id nope."
    assert running_state.task_store.get(task.id).interval_minutes == 30
