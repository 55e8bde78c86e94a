# tests/conftest.py

from __future__ import annotations

import os
from pathlib import Path
from types import SimpleNamespace

import pytest

from desk_agent.tasks.task_store import TaskStore


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Provider overrides from the developer's shell must not leak into tests."""
    for name in list(os.environ):
        if name.startswith("DESK_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="desk-agent-test",
        log_level="DEBUG",
        log_keep_days=7,
        console_enabled=False,
        save_history=True,
        fire_missed_on_startup=False,
        data_dir=tmp_path,
        log_dir=tmp_path / "logs",
        tasks_path=tmp_path / "tasks.json",
        provider_config_path=tmp_path / "config.json",
        dialog_history_path=tmp_path / "dialog_histories.json",
        request_timeout_seconds=5.0,
        request_retries=3,
        retry_backoff_seconds=0.0,
        task_max_tokens=2048,
        chat_max_tokens=4096,
        notify_preview_chars=100,
        sync_server_url="",
        sync_token="",
    )


@pytest.fixture()
def store(tmp_path: Path) -> TaskStore:
    return TaskStore(tmp_path / "tasks.json")
