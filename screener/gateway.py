"""Single choke-point to the Anthropic Messages API.

Owns model selection and the overload retry policy.  The SDK's own retries
are disabled so :meth:`InferenceGateway._with_retry` is the only retry loop:
HTTP 529 ("overloaded") is retried with equal-jitter exponential backoff, any
other error propagates on the first attempt.
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable

import anthropic
import httpx

from screener.config import Settings, get_settings

log = logging.getLogger(__name__)

HAIKU = "claude-haiku-4-5-20251001"
SONNET = "claude-sonnet-4-6"
OPUS = "claude-opus-4-6"
VALID_MODELS = (HAIKU, SONNET, OPUS)

OVERLOADED_STATUS = 529
OVERLOADED_MESSAGE = "The AI service is temporarily overloaded. Please try again in a few minutes."


class LLMCallError(Exception):
    """LLM call failed or returned unusable output."""
    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class ServiceOverloadedError(LLMCallError):
    """Raised once the overload retry budget is exhausted."""
    def __init__(self, attempts: int):
        super().__init__(OVERLOADED_MESSAGE, retryable=True)
        self.attempts = attempts


def is_overloaded(exc: BaseException) -> bool:
    return isinstance(exc, anthropic.APIStatusError) and exc.status_code == OVERLOADED_STATUS


def backoff_delay(attempt: int, initial_delay: float, jitter: float) -> float:
    """Equal jitter: half the doubled base delay, plus a random share of the other half."""
    base = initial_delay * (2 ** attempt)
    return base / 2 + jitter * (base / 2)


def _first_text(response: Any) -> str:
    content = getattr(response, "content", None) or []
    if not content:
        return ""
    block = content[0]
    if getattr(block, "type", None) == "text":
        return block.text
    return ""


class InferenceGateway:
    """Async gateway around ``anthropic.AsyncAnthropic``.

    The instance is stateless between calls and meant to be shared; pass a
    prebuilt *client* to inject a test double.
    """

    def __init__(
        self,
        client: Any = None,
        *,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ):
        self.settings = settings or get_settings()
        self.default_model = self.settings.default_model
        self.max_attempts = max(1, self.settings.retry_max_attempts)
        self.initial_delay = self.settings.retry_initial_delay_seconds
        self._sleep = sleep
        self._jitter = jitter
        self._client = client if client is not None else self._build_client()

    def _build_client(self) -> anthropic.AsyncAnthropic:
        return anthropic.AsyncAnthropic(
            api_key=self.settings.anthropic_api_key,
            timeout=httpx.Timeout(
                self.settings.request_timeout_seconds,
                connect=self.settings.connect_timeout_seconds,
            ),
            max_retries=0,
        )

    # -- model policy -------------------------------------------------------

    def resolve_model(self, model: str | None) -> str:
        """Return *model* if recognised, else the configured default."""
        if model in VALID_MODELS:
            return model  # type: ignore[return-value]
        return self.default_model

    def vision_model(self, model: str | None) -> str:
        """Cheap-tier vision on dense slides is unreliable; upgrade it one tier."""
        resolved = self.resolve_model(model)
        return SONNET if resolved == HAIKU else resolved

    # -- calls --------------------------------------------------------------

    async def complete(
        self, system: str, user: str, *, model: str | None = None, max_tokens: int = 4096,
    ) -> str:
        """Send a text prompt, return the text of the first response block."""
        return await self._with_retry(lambda: self._create(
            model=self.resolve_model(model),
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": user}],
        ))

    async def complete_with_document(
        self, system: str, user: str, pdf_base64: str, *,
        model: str | None = None, max_tokens: int = 4096,
    ) -> str:
        """Send a PDF as a native document block alongside *user*."""
        return await self._with_retry(lambda: self._create(
            model=self.vision_model(model),
            max_tokens=max_tokens,
            system=system,
            messages=[{
                "role": "user",
                "content": [
                    {
                        "type": "document",
                        "source": {"type": "base64", "media_type": "application/pdf", "data": pdf_base64},
                    },
                    {"type": "text", "text": user},
                ],
            }],
        ))

    async def _create(self, **kwargs: Any) -> str:
        response = await self._client.messages.create(**kwargs)
        return _first_text(response)

    async def _with_retry(self, fn: Callable[[], Awaitable[str]]) -> str:
        last_exc: BaseException | None = None
        for attempt in range(self.max_attempts):
            try:
                return await fn()
            except anthropic.APIStatusError as exc:
                if not is_overloaded(exc):
                    raise
                last_exc = exc
                if attempt < self.max_attempts - 1:
                    wait = backoff_delay(attempt, self.initial_delay, self._jitter())
                    log.warning(
                        "Anthropic API overloaded (attempt %d/%d), retrying in %.1fs",
                        attempt + 1, self.max_attempts, wait,
                    )
                    await self._sleep(wait)
        raise ServiceOverloadedError(self.max_attempts) from last_exc
