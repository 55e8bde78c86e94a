# src/desk_agent/tasks/task_executor.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from ..core.events import TASK_RESULT
from ..core.ports import CompletionClient, EventSink, Notifier, ProviderSource
from .task_models import ExecutionResult, ExecutionStatus, Task, to_iso, utc_now

logger = logging.getLogger(__name__)


def safe_notify(notifier: Notifier, title: str, body: str) -> None:
    try:
        notifier.notify(title, body)
    except Exception:
        logger.exception("Notifier failed title=%r", title)


class PromptExecutor:
    """
    Runs one task prompt against the active provider.

    execute() never raises for provider/network problems: the outcome is reported through the
    notifier + logs and returned as an ExecutionResult. Cancellation is the one exception:
    asyncio.CancelledError propagates so the caller's task actually stops.
    """

    def __init__(
        self,
        *,
        providers: ProviderSource,
        client: CompletionClient,
        notifier: Notifier,
        events: EventSink,
        max_tokens: int = 2048,
        preview_chars: int = 100,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._providers = providers
        self._client = client
        self._notifier = notifier
        self._events = events
        self._max_tokens = int(max_tokens)
        self._preview_chars = max(0, int(preview_chars))
        self._clock = clock

    async def execute(self, task: Task) -> ExecutionResult:
        provider = self._providers.get_active_provider()
        if provider is None:
            logger.warning("Task %s skipped: no provider/API key configured", task.id)
            safe_notify(self._notifier, "Task failed", "Configure an API provider and key first.")
            return ExecutionResult(ExecutionStatus.CONFIG_ERROR, error="no provider configured")

        model = self._providers.get_active_model()
        if not model:
            logger.warning("Task %s skipped: no active model configured", task.id)
            safe_notify(self._notifier, "Task failed", "Choose an active model first.")
            return ExecutionResult(ExecutionStatus.CONFIG_ERROR, error="no model configured")

        logger.info("Executing task id=%s name=%s model=%s", task.id, task.name, model)

        try:
            text = await self._client.complete_with_retry(
                provider,
                model=model,
                messages=[{"role": "user", "content": task.prompt or ""}],
                max_tokens=self._max_tokens,
            )
        except asyncio.CancelledError:
            logger.info("Task execution cancelled id=%s", task.id)
            raise
        except Exception as e:
            msg = str(e).strip() or e.__class__.__name__
            logger.error("Task execution failed id=%s error=%s", task.id, msg)
            safe_notify(self._notifier, "Task error", msg)
            return ExecutionResult(ExecutionStatus.FAILED, error=msg)

        self._events.emit(
            TASK_RESULT,
            {
                "taskId": task.id,
                "taskName": task.name,
                "result": text,
                "timestamp": to_iso(self._clock()),
            },
        )

        if task.notify_on_result:
            safe_notify(self._notifier, f"{task.name} finished", text[: self._preview_chars])

        logger.info("Task executed id=%s chars=%d", task.id, len(text))
        return ExecutionResult(ExecutionStatus.OK, text=text)
