# src/desk_agent/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the task subsystem and the console.

The core depends on Protocols instead of concrete implementations.
This keeps notification surfaces / providers / storage swappable and makes testing easier.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..config import Provider
    from ..tasks.task_models import Task

ChatMessage = dict[str, str]
# OpenAI-style chat messages: {"role": "...", "content": "..."}.

EventHandler = Callable[[Any], None]


class ProviderSource(Protocol):
    """Where the active provider/model come from (config.json + env)."""

    def get_active_provider(self) -> Provider | None: ...
    def get_active_model(self) -> str: ...


class CompletionClient(Protocol):
    async def complete_with_retry(
            self,
            provider: Provider,
            *,
            model: str,
            messages: list[ChatMessage],
            max_tokens: int,
    ) -> str: ...


class Notifier(Protocol):
    """Fire-and-forget system notification. Must not raise."""

    def notify(self, title: str, body: str) -> None: ...


class EventSink(Protocol):
    """Presentation channel (task:result, tasks:updated, ...)."""

    def emit(self, name: str, payload: Any = None) -> None: ...


class TaskRepo(Protocol):
    def load(self) -> list[Task]: ...
    def save(self, tasks: list[Task]) -> bool: ...
    def mutate(self, fn: Callable[[list[Task]], Any]) -> tuple[Any, bool]: ...
    def get(self, task_id: str) -> Task | None: ...
    def replace_all(self, tasks: list[Task]) -> bool: ...
