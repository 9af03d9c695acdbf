"""
OpenAI-backed embedding and chat providers.

Transient upstream failures (connection errors, timeouts, rate limits, 5xx)
are retried with bounded exponential backoff and then surfaced as
UpstreamProviderError. Everything else propagates unchanged.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import openai
from loguru import logger
from openai import AsyncOpenAI

from shared.config import Settings, get_settings
from shared.errors import UpstreamProviderError

T = TypeVar("T")

TRANSIENT_ERRORS = (
    openai.APIConnectionError,  # includes APITimeoutError
    openai.RateLimitError,
    openai.InternalServerError,
)


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    description: str,
    max_attempts: int = 3,
    backoff_base: float = 1.0,
) -> T:
    """
    Run ``operation`` until it succeeds or ``max_attempts`` transient failures.

    Delay before attempt n+1 is ``backoff_base * 2**(n-1)`` seconds.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except TRANSIENT_ERRORS as e:
            if attempt >= max_attempts:
                logger.error(f"{description} failed after {attempt} attempts: {e}")
                raise UpstreamProviderError(f"{description} failed: {e}", attempts=attempt) from e
            delay = backoff_base * 2 ** (attempt - 1)
            logger.warning(
                f"{description} failed (attempt {attempt}/{max_attempts}), retrying in {delay:.1f}s: {e}"
            )
            await asyncio.sleep(delay)


class OpenAIProvider:
    """Shared client handling for the OpenAI providers."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key.get_secret_value(),
                base_url=self.settings.openai_base_url,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def _retrying(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        return await with_retries(
            operation,
            description,
            max_attempts=self.settings.provider_max_attempts,
            backoff_base=self.settings.provider_backoff_base_seconds,
        )


class OpenAIEmbeddingProvider(OpenAIProvider):
    """Turns text into a fixed-length embedding vector."""

    async def embed(self, text: str) -> list[float]:
        async def call() -> Any:
            return await self.client.embeddings.create(
                model=self.settings.embedding_model,
                input=text,
                encoding_format="float",
            )

        response = await self._retrying(call, "Embedding request")
        if not response.data:
            raise UpstreamProviderError("Embedding response contained no data", attempts=1)
        return list(response.data[0].embedding)


class OpenAIChatProvider(OpenAIProvider):
    """Chat completions constrained to a JSON schema."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        schema_name: str,
        schema: dict[str, Any],
        temperature: float = 0.3,
    ) -> str:
        """
        Ask the model for output matching ``schema``.

        Returns:
            The raw message content; validating it is the caller's job.
        """

        async def call() -> Any:
            return await self.client.chat.completions.create(
                model=self.settings.openai_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                response_format={
                    "type": "json_schema",
                    "json_schema": {"name": schema_name, "strict": True, "schema": schema},
                },
            )

        response = await self._retrying(call, f"Completion request ({schema_name})")
        content = response.choices[0].message.content if response.choices else None
        return content or ""
