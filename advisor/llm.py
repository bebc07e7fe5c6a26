"""Chat-completion client with a process-wide concurrency cap."""

import asyncio
from collections.abc import AsyncIterator, Sequence
from typing import Any

from openai import AsyncOpenAI

from .config import config
from .models import ConversationTurn

logger = config.get_logger(__name__)

MessageLike = ConversationTurn | dict[str, str]


def to_messages(messages: Sequence[MessageLike]) -> list[dict[str, str]]:
    """Normalize turns or raw mappings into the provider message format.

    Returns:
        List of ``{"role", "content"}`` dictionaries.
    """
    return [
        message.to_message() if isinstance(message, ConversationTurn) else message
        for message in messages
    ]


class LLMClient:
    """Wraps ``AsyncOpenAI`` chat completions behind one semaphore.

    Every model call in the application (answers, history summaries, opportunity
    rationales, query expansion) goes through the same instance so a burst of
    chat turns cannot exceed ``max_concurrency`` in-flight requests. Waiters are
    released in arrival order.
    """

    def __init__(
        self,
        api_key: str | None = None,
        max_concurrency: int | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: OpenAI API key. If None, reads from config.
            max_concurrency: Cap on simultaneous model calls. If None, uses
                config.MODEL_CONCURRENCY.
            client: Pre-built AsyncOpenAI client, mainly for tests.
        """
        if client is None:
            default_headers = config.get_api_headers()
            client = AsyncOpenAI(
                api_key=api_key or config.get_openai_api_key(),
                base_url=config.OPENAI_BASE_URL,
                default_headers=default_headers or None,
            )
        self.client = client
        self.max_concurrency = max_concurrency or config.MODEL_CONCURRENCY
        self._semaphore = asyncio.Semaphore(self.max_concurrency)
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        """Number of model calls currently holding a slot."""
        return self._in_flight

    async def _create(self, **kwargs: Any) -> Any:  # noqa: ANN401
        async with self._semaphore:
            self._in_flight += 1
            try:
                return await self.client.chat.completions.create(**kwargs)
            finally:
                self._in_flight -= 1

    async def create_chat_completion(
        self,
        messages: Sequence[MessageLike],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Any:  # noqa: ANN401
        """Run a non-streaming chat completion.

        Returns:
            The provider's completion response.
        """
        return await self._create(
            model=model or config.CHAT_MODEL,
            messages=to_messages(messages),
            temperature=config.CHAT_TEMPERATURE if temperature is None else temperature,
            max_tokens=max_tokens or config.CHAT_MAX_TOKENS,
        )

    async def complete(
        self,
        messages: Sequence[MessageLike],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Run a chat completion and return the stripped message text.

        Returns:
            Completion text, or an empty string when the model returned none.
        """
        response = await self.create_chat_completion(
            messages,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if not response.choices:
            return ""
        content = response.choices[0].message.content
        return content.strip() if content else ""

    async def stream_chat_completion(
        self,
        messages: Sequence[MessageLike],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a chat completion as incremental content fragments.

        Only opening the stream counts against the concurrency cap.

        Yields:
            Non-empty content deltas in arrival order.
        """
        stream = await self._create(
            model=model or config.CHAT_MODEL,
            messages=to_messages(messages),
            temperature=config.CHAT_TEMPERATURE if temperature is None else temperature,
            max_tokens=max_tokens or config.CHAT_MAX_TOKENS,
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content
            if content:
                yield content

    async def close(self) -> None:
        """Release the underlying HTTP client."""
        await self.client.close()
