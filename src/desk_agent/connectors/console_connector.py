# src/desk_agent/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import Any

from ..cli.commands import registry as command_registry
from ..core.chat import generate_reply
from ..core.events import APP_FOCUS, TASK_RESULT
from ..core.state import AppState
from ..llm.client import friendly_llm_error_message

logger = logging.getLogger(__name__)

CHAT_TIMEOUT_SECONDS = 300.0


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    if sys.stdout.isatty():
        sys.stdout.write("\033[1A\033[2K\r")
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
    else:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def format_task_result(payload: Any) -> str:
    if not isinstance(payload, dict):
        return f"[TASK] {payload}"
    name = payload.get("taskName") or payload.get("taskId") or "task"
    result = str(payload.get("result") or "")
    return f"[TASK] {name}:\n{result}"


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Type your messages. Use /help for commands. Use /exit to quit.\n")

    app_name = str(getattr(state.settings, "app_name", "desk-agent"))

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (e.g. run-now)
        _print_ts(text)

    def on_task_result(payload: Any) -> None:
        _print_ts(format_task_result(payload))

    def on_focus(_payload: Any) -> None:
        _print_ts("[CONSOLE] Notification clicked.")

    state.events.subscribe(TASK_RESULT, on_task_result)
    state.events.subscribe(APP_FOCUS, on_focus)

    try:
        while True:
            try:
                user_input = input(">>> You: ").strip()
                _rewrite_prev_line(f"[{_ts_local()}] >>> You: {user_input}")
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            try:
                with state.lock:
                    cmd_response = command_registry.handle(state, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                cmd_response = "Internal error while handling a command."

            if cmd_response is not None:
                _print_ts(cmd_response)
                continue

            try:
                with state.lock:
                    reply = state.call(generate_reply(state, user_input), timeout=CHAT_TIMEOUT_SECONDS)
            except RuntimeError as e:
                msg = friendly_llm_error_message(e)
                logger.info("LLM runtime error: %s", msg)
                _print_ts(f"[LLM] {msg}")
                continue
            except Exception:
                logger.exception("Console chat handler crashed.")
                _print_ts("Internal error while generating a reply.")
                continue

            _print_ts(f"<<< {app_name}: {reply}\n")
    finally:
        state.events.unsubscribe(TASK_RESULT, on_task_result)
        state.events.unsubscribe(APP_FOCUS, on_focus)

    logger.info("Console connector finished.")
