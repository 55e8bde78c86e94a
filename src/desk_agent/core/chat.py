# src/desk_agent/core/chat.py

"""
Console chat orchestration.

Key invariants:
- history is updated only after a successful completion (no half turns are saved),
- only the last MAX_CONTEXT_MESSAGES messages are sent; MAX_STORED_MESSAGES are kept.
"""

from __future__ import annotations

import logging

from ..llm.client import LLMNotConfiguredError
from .ports import ChatMessage
from .state import AppState

logger = logging.getLogger(__name__)

DEFAULT_DIALOG = "console"
MAX_CONTEXT_MESSAGES = 40
MAX_STORED_MESSAGES = 200


def get_history(state: AppState, dialog_key: str = DEFAULT_DIALOG) -> list[ChatMessage]:
    return state.dialog_histories.setdefault(dialog_key, [])


def clear_history(state: AppState, dialog_key: str = DEFAULT_DIALOG) -> int:
    removed = len(state.dialog_histories.get(dialog_key, []))
    state.dialog_histories.pop(dialog_key, None)
    return removed


async def generate_reply(state: AppState, user_text: str, *, dialog_key: str = DEFAULT_DIALOG) -> str:
    provider = state.providers.get_active_provider()
    if provider is None:
        raise LLMNotConfiguredError("No active provider / API key.")
    model = state.providers.get_active_model()
    if not model:
        raise LLMNotConfiguredError("No active model.")

    history = get_history(state, dialog_key)
    user_msg: ChatMessage = {"role": "user", "content": user_text}
    messages = [*history[-MAX_CONTEXT_MESSAGES:], user_msg]

    max_tokens = int(getattr(state.settings, "chat_max_tokens", 4096))
    logger.debug("Chat request model=%s messages=%d", model, len(messages))

    reply = await state.llm.complete_with_retry(
        provider, model=model, messages=messages, max_tokens=max_tokens
    )

    history.append(user_msg)
    history.append({"role": "assistant", "content": reply})
    if len(history) > MAX_STORED_MESSAGES:
        del history[: len(history) - MAX_STORED_MESSAGES]

    return reply
