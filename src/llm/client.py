"""
Language-model client used by every analysis agent.

``OpenAIClient`` talks to any OpenAI-compatible chat endpoint (OpenAI,
Groq, a local gateway via ``OPENAI_BASE_URL``). A single ``complete``
call is one attempt; ``call_with_retry`` adds the timeout and exponential
backoff shared by all agents.
"""

import asyncio
import logging
import os
from typing import Awaitable, Callable, Optional, Protocol, TypeVar

import openai
from openai import AsyncOpenAI

from src.config import ModelConfig
from src.errors import LLMServiceError, TransientLLMError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LLMClient(Protocol):
    """Anything that turns a system + user prompt into reply text."""

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        ...


class OpenAIClient:
    """Chat-completions client with errors mapped onto the pipeline hierarchy."""

    def __init__(self, config: ModelConfig, api_key: Optional[str] = None) -> None:
        self.config = config
        self._client = AsyncOpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=config.base_url or None,
            timeout=config.timeout_seconds,
            max_retries=0,
        )

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self.config.llm_model,
                temperature=self.config.llm_temperature,
                max_tokens=self.config.llm_max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except (openai.APITimeoutError, openai.APIConnectionError, openai.RateLimitError) as exc:
            raise TransientLLMError(f"{type(exc).__name__}: {exc}") from exc
        except openai.InternalServerError as exc:
            raise TransientLLMError(f"Server error {exc.status_code}: {exc}") from exc
        except openai.APIError as exc:
            raise LLMServiceError(f"{type(exc).__name__}: {exc}") from exc

        if not response.choices:
            raise LLMServiceError("Model returned no choices")
        return response.choices[0].message.content or ""


async def call_with_retry(
    call: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    base_delay: float,
    timeout: float,
    label: str = "llm",
) -> T:
    """Run ``call`` with a per-attempt timeout and exponential backoff.

    Transient failures (timeouts, rate limits, connection and 5xx errors)
    are retried up to ``max_retries`` times, waiting ``base_delay * 2**n``
    between attempts. Anything else, or the last transient failure, is
    raised as ``LLMServiceError`` with the attempt count.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError:
            error: LLMServiceError = TransientLLMError(f"{label} timed out after {timeout}s")
        except TransientLLMError as exc:
            error = exc
        except LLMServiceError as exc:
            exc.attempts = attempt
            raise

        if attempt > max_retries:
            logger.error("%s failed after %d attempt(s): %s", label, attempt, error)
            raise LLMServiceError(str(error), attempts=attempt) from error

        delay = base_delay * (2 ** (attempt - 1))
        logger.warning(
            "%s attempt %d failed (%s), retrying in %.1fs", label, attempt, error, delay
        )
        await asyncio.sleep(delay)
