# src/desk_agent/connectors/scheduler_runner.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from ..core.state import AppState

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


async def _run_scheduler(state: AppState, stop_event: asyncio.Event) -> None:
    """
    Background loop body: start scheduler -> wait for stop -> tear down.

    Shutdown model:
    - main thread sets stop_event via loop.call_soon_threadsafe(stop_event.set)
    - timers are disarmed and in-flight executions cancelled before the loop closes
    """
    try:
        await state.scheduler.start()
    except Exception:
        logger.exception("Scheduler failed to start; timers are not armed.")

    await stop_event.wait()

    try:
        await state.scheduler.stop()
    finally:
        await state.llm.aclose()
    logger.info("Scheduler stopped.")


@dataclass
class SchedulerBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def call(self, coro: Coroutine[Any, Any, _T], timeout: float | None = None) -> _T:
        fut = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return fut.result(timeout=timeout)

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal scheduler stop (loop closed).", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_scheduler_in_background(state: AppState) -> SchedulerBackgroundRunner | None:
    """
    Start the task scheduler's event loop in a background thread.

    Why a thread:
    - console REPL is blocking (input()).
    - timers and HTTP calls need a running asyncio loop.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_scheduler(state, stop_event))
        finally:
            with contextlib.suppress(Exception):
                loop.run_until_complete(loop.shutdown_asyncgens())
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="task-scheduler", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Scheduler thread did not initialize properly.")
        return None

    bg = SchedulerBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
    state.runner = bg
    logger.info("Scheduler background thread started.")
    return bg
