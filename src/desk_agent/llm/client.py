# src/desk_agent/llm/client.py

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from ..config import Provider
from ..core.ports import ChatMessage

logger = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "(no response)"


class LLMNotConfiguredError(RuntimeError):
    """No active provider / API key / model."""


class LLMRequestError(RuntimeError):
    """The request failed (non-2xx, or network errors after all retries)."""


def _is_auth_error(exc: BaseException) -> bool:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return True
    return exc.__class__.__name__ in {
        "AuthenticationError",
        "PermissionDeniedError",
        "UnauthorizedError",
    }


def _is_rate_limit_error(exc: BaseException) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"RateLimitError", "TooManyRequestsError"}


def _is_connection_error(exc: BaseException) -> bool:
    # APITimeoutError is a subclass of APIConnectionError.
    if isinstance(exc, (openai.APIConnectionError, httpx.TransportError, asyncio.TimeoutError)):
        return True
    return exc.__class__.__name__ in {
        "APIConnectionError",
        "APITimeoutError",
        "Timeout",
        "ConnectTimeout",
        "ReadTimeout",
        "WriteTimeout",
    }


def _is_timeout_error(exc: BaseException) -> bool:
    return isinstance(exc, (openai.APITimeoutError, httpx.TimeoutException, asyncio.TimeoutError))


def _make_timeout_obj(total_s: float) -> httpx.Timeout:
    connect_s = min(10.0, total_s)
    return httpx.Timeout(total_s, connect=connect_s)


def extract_text(response: Any) -> str:
    """First choice's message content, or a placeholder when the shape is not as expected."""
    try:
        choice0 = response.choices[0]
        message = getattr(choice0, "message", None)
        content = getattr(message, "content", None) if message is not None else None
    except (AttributeError, IndexError, KeyError, TypeError):
        content = None

    if isinstance(content, str) and content:
        return content
    return NO_RESPONSE_TEXT


def friendly_llm_error_message(err: Exception) -> str:
    msg = str(err).strip() or "LLM error."
    if isinstance(err, LLMNotConfiguredError):
        return (
            "LLM is not configured (missing provider or API key). "
            "Set DESK_API_KEY / DESK_BASE_URL or edit config.json."
        )
    if _is_auth_error(err) or _is_auth_error(err.__cause__ or err):
        return "LLM authentication failed. Check your API key."
    if _is_rate_limit_error(err.__cause__ or err):
        return "LLM is rate-limited. Try again later."
    return msg


class ChatCompletionClient:
    """
    Non-streaming chat completions against an OpenAI-compatible provider.

    - the SDK's own retries are disabled; complete_with_retry() owns the retry policy
    - one AsyncOpenAI client is cached per (base_url, api_key)
    - http_client is injectable so tests can plug in httpx.MockTransport
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 30.0,
        retries: int = 3,
        backoff_seconds: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout_seconds = float(timeout_seconds)
        self._retries = max(1, int(retries))
        self._backoff_seconds = max(0.0, float(backoff_seconds))
        self._http_client = http_client
        self._clients: dict[tuple[str, str], AsyncOpenAI] = {}

    @classmethod
    def from_settings(cls, settings: Any, http_client: httpx.AsyncClient | None = None) -> ChatCompletionClient:
        return cls(
            timeout_seconds=float(getattr(settings, "request_timeout_seconds", 30.0)),
            retries=int(getattr(settings, "request_retries", 3)),
            backoff_seconds=float(getattr(settings, "retry_backoff_seconds", 1.0)),
            http_client=http_client,
        )

    def _get_client(self, provider: Provider) -> AsyncOpenAI:
        key = (provider.base_url, provider.api_key)
        client = self._clients.get(key)
        if client is None:
            client = AsyncOpenAI(
                base_url=provider.base_url,
                api_key=provider.api_key,
                timeout=_make_timeout_obj(self._timeout_seconds),
                max_retries=0,
                http_client=self._http_client,
            )
            self._clients[key] = client
        return client

    async def complete(
        self,
        provider: Provider,
        *,
        model: str,
        messages: list[ChatMessage],
        max_tokens: int,
    ) -> str:
        """Single attempt. Raises openai/httpx errors as-is."""
        if not model:
            raise LLMNotConfiguredError("No active model is configured.")

        client = self._get_client(provider)
        async with asyncio.timeout(self._timeout_seconds):
            response = await client.chat.completions.create(
                model=model,
                messages=messages,  # type: ignore[arg-type]
                max_tokens=int(max_tokens),
            )
        return extract_text(response)

    async def complete_with_retry(
        self,
        provider: Provider,
        *,
        model: str,
        messages: list[ChatMessage],
        max_tokens: int,
    ) -> str:
        """
        Up to `retries` attempts; only network/timeout errors are retried, waiting
        backoff * attempt between attempts (1s, 2s, ...). Anything else fails at once.

        Cancellation (asyncio.CancelledError) is never swallowed.
        """
        last_error: BaseException | None = None

        for attempt in range(1, self._retries + 1):
            try:
                return await self.complete(
                    provider, model=model, messages=messages, max_tokens=max_tokens
                )
            except LLMNotConfiguredError:
                raise
            except Exception as e:
                last_error = e

                if not _is_connection_error(e):
                    if _is_auth_error(e):
                        raise LLMRequestError("LLM authentication failed. Check your API key.") from e
                    status = getattr(e, "status_code", None)
                    if status is not None:
                        raise LLMRequestError(f"API error: {status}") from e
                    raise LLMRequestError(f"LLM request failed: {e.__class__.__name__}") from e

                if _is_timeout_error(e):
                    logger.warning("LLM: request timed out model=%s attempt=%d", model, attempt)
                else:
                    logger.warning(
                        "LLM: network error model=%s attempt=%d (%s)", model, attempt, e.__class__.__name__
                    )

                if attempt >= self._retries:
                    break

                delay = self._backoff_seconds * attempt
                logger.info("LLM: retrying in %.1fs (attempt %d/%d)", delay, attempt + 1, self._retries)
                await asyncio.sleep(delay)

        if last_error is not None and _is_timeout_error(last_error):
            raise LLMRequestError("Request timed out; check your network connection.") from last_error
        raise LLMRequestError("LLM network error after retries.") from last_error

    async def aclose(self) -> None:
        for client in self._clients.values():
            try:
                await client.close()
            except Exception:
                logger.debug("LLM client close failed.", exc_info=True)
        self._clients.clear()
