# src/desk_agent/core/state.py

from __future__ import annotations

import threading
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from .events import EventBus
from .ports import ChatMessage, Notifier, ProviderSource

if TYPE_CHECKING:
    from ..connectors.scheduler_runner import SchedulerBackgroundRunner
    from ..llm.client import ChatCompletionClient
    from ..sync.client import TaskSyncClient
    from ..tasks.task_scheduler import TaskScheduler
    from ..tasks.task_store import TaskStore

_T = TypeVar("_T")


@dataclass
class AppState:
    settings: Any

    providers: ProviderSource
    llm: ChatCompletionClient
    events: EventBus
    notifier: Notifier
    task_store: TaskStore
    scheduler: TaskScheduler
    sync: TaskSyncClient | None = None

    # Set once the background event loop is running.
    runner: SchedulerBackgroundRunner | None = None

    save_history: bool = True
    dialog_histories: dict[str, list[ChatMessage]] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def call(self, coro: Coroutine[Any, Any, _T], timeout: float | None = None) -> _T:
        """Run a coroutine on the scheduler loop from a foreign thread and wait for it."""
        if self.runner is None:
            coro.close()
            raise RuntimeError("Scheduler loop is not running.")
        return self.runner.call(coro, timeout=timeout)
