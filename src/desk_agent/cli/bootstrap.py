# src/desk_agent/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (provider config/LLM/store/scheduler/notifier),
- persists per-dialog histories as JSON (optional).
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Literal, cast

from ..config import ProviderConfig, get_settings
from ..core.events import APP_FOCUS, EventBus
from ..core.ports import ChatMessage, Notifier
from ..core.state import AppState
from ..llm.client import ChatCompletionClient
from ..notifier import DesktopNotifier
from ..sync.client import TaskSyncClient
from ..tasks.task_executor import PromptExecutor
from ..tasks.task_scheduler import TaskScheduler
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_path.parent.mkdir(parents=True, exist_ok=True)
    settings.provider_config_path.parent.mkdir(parents=True, exist_ok=True)
    settings.dialog_history_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(
    *,
    settings=None,
    notifier: Notifier | None = None,
    llm: ChatCompletionClient | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    events = EventBus()
    if notifier is None:
        notifier = DesktopNotifier(
            app_name=settings.app_name,
            on_click=lambda: events.emit(APP_FOCUS),
        )

    providers = ProviderConfig(settings.provider_config_path)
    llm_client = llm or ChatCompletionClient.from_settings(settings)
    store = TaskStore(settings.tasks_path)

    executor = PromptExecutor(
        providers=providers,
        client=llm_client,
        notifier=notifier,
        events=events,
        max_tokens=settings.task_max_tokens,
        preview_chars=settings.notify_preview_chars,
    )
    scheduler = TaskScheduler(
        store,
        executor,
        notifier,
        events,
        fire_missed_on_startup=settings.fire_missed_on_startup,
    )

    sync = None
    if settings.sync_server_url and settings.sync_token:
        sync = TaskSyncClient(
            settings.sync_server_url,
            settings.sync_token,
            timeout_seconds=settings.request_timeout_seconds,
        )

    return AppState(
        settings=settings,
        providers=providers,
        llm=llm_client,
        events=events,
        notifier=notifier,
        task_store=store,
        scheduler=scheduler,
        sync=sync,
        save_history=settings.save_history,
    )


def load_dialog_histories(state: AppState) -> dict[str, list[ChatMessage]]:
    if not state.save_history:
        return {}
    raw_path = getattr(state.settings, "dialog_history_path", None)
    if not raw_path:
        return {}
    path = Path(raw_path)
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text("utf-8"))
        if not isinstance(data, dict):
            return {}
        out: dict[str, list[ChatMessage]] = {}
        for key, msgs in data.items():
            if not isinstance(key, str) or not isinstance(msgs, list):
                continue
            clean: list[ChatMessage] = []
            for m in msgs:
                if isinstance(m, dict):
                    role_any = m.get("role", "user")
                    role_s = role_any if isinstance(role_any, str) else "user"
                    if role_s not in ("system", "user", "assistant"):
                        role_s = "user"
                    role = cast(Literal["system", "user", "assistant"], role_s)

                    clean.append({"role": role, "content": str(m.get("content", ""))})
            if clean:
                out[key] = clean
        logger.info("Loaded dialog histories: %d dialogs from %s", len(out), path)
        return out
    except (OSError, ValueError):
        logger.exception("Failed to load dialog histories from %s", path)
        return {}


def save_dialog_histories(state: AppState) -> None:
    if not state.save_history:
        return
    raw_path = getattr(state.settings, "dialog_history_path", None)
    if not raw_path:
        return
    path = Path(raw_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(state.dialog_histories, ensure_ascii=False, indent=2), "utf-8")
        os.replace(tmp, path)
        with contextlib.suppress(OSError):
            # History may contain sensitive content, keep the file private on disk.
            os.chmod(path, 0o600)
        logger.info("Saved dialog histories: %d dialogs to %s", len(state.dialog_histories), path)
    except (OSError, TypeError, ValueError):
        logger.exception("Failed to save dialog histories to %s", path)
