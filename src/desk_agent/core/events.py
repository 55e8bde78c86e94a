# src/desk_agent/core/events.py

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any

from .ports import EventHandler

logger = logging.getLogger(__name__)

TASK_RESULT = "task:result"
TASKS_UPDATED = "tasks:updated"
APP_FOCUS = "app:focus"


class EventBus:
    """
    Tiny synchronous pub/sub used as the presentation channel.

    emit() calls handlers in subscription order on the caller's thread.
    A failing handler is logged and skipped; it never breaks the emitter.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, name: str, handler: EventHandler) -> None:
        with self._lock:
            self._handlers[name].append(handler)

    def unsubscribe(self, name: str, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.get(name)
            if handlers and handler in handlers:
                handlers.remove(handler)

    def emit(self, name: str, payload: Any = None) -> None:
        with self._lock:
            handlers = list(self._handlers.get(name, ()))

        if not handlers:
            logger.debug("Event %s has no listeners", name)
            return

        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Event handler failed event=%s", name)
