"""Query and chunk embeddings through the OpenAI embeddings endpoint."""

import asyncio
import math

import numpy as np
from openai import AsyncOpenAI

from .config import config
from .errors import UpstreamError, ValidationError

logger = config.get_logger(__name__)


def _to_vector(values: list[float]) -> np.ndarray:
    return np.asarray(values, dtype=np.float32)


class EmbeddingService:
    """Turns knowledge-base text and visitor queries into vectors.

    Provider failures surface as ``UpstreamError`` so callers can pick a
    degraded path without knowing about the SDK's exception types.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        batch_delay: float | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            api_key: OpenAI API key. If None, reads OPENAI_API_KEY.
            model: Embedding model name. If None, uses config.EMBEDDING_MODEL.
            batch_delay: Pause in seconds between ingestion batches, to stay
                under provider rate limits. If None, uses
                config.EMBEDDING_BATCH_DELAY_SECONDS.
        """
        self.client = AsyncOpenAI(
            api_key=api_key or config.get_openai_api_key(),
            base_url=config.OPENAI_BASE_URL,
            default_headers=config.get_api_headers() or None,
        )
        self.model = model or config.EMBEDDING_MODEL
        if batch_delay is None:
            batch_delay = config.EMBEDDING_BATCH_DELAY_SECONDS
        self.batch_delay = batch_delay

    async def get_embedding(self, text: str) -> np.ndarray:
        """Embed one query.

        Raises:
            ValidationError: If ``text`` is blank.
            UpstreamError: If the provider call fails.

        Returns:
            The embedding as a float32 vector.
        """
        if not text.strip():
            msg = "Cannot embed empty text"
            raise ValidationError(msg)
        try:
            response = await self.client.embeddings.create(model=self.model, input=text)
        except Exception as exc:
            logger.exception("Error generating embedding with %s", self.model)
            msg = f"Embedding request failed: {exc}"
            raise UpstreamError(msg, model=self.model) from exc
        return _to_vector(response.data[0].embedding)

    async def get_embeddings_batch(
        self,
        texts: list[str],
        batch_size: int | None = None,
    ) -> list[np.ndarray]:
        """Embed chunk texts, one provider call per batch.

        Batches run one after another with ``batch_delay`` between them. A
        failing batch aborts the whole call so no partial result is written.

        Args:
            texts: Texts to embed, in order.
            batch_size: Texts per provider call. If None, uses
                config.EMBEDDING_BATCH_SIZE.

        Raises:
            UpstreamError: If a batch fails or returns the wrong number of
                vectors.

        Returns:
            One vector per input text, in input order.
        """
        batch_size = batch_size or config.EMBEDDING_BATCH_SIZE
        total_batches = math.ceil(len(texts) / batch_size)
        embeddings: list[np.ndarray] = []

        for batch_number, start in enumerate(range(0, len(texts), batch_size), 1):
            batch = texts[start : start + batch_size]
            try:
                response = await self.client.embeddings.create(
                    model=self.model,
                    input=batch,
                )
            except Exception as exc:
                logger.exception(
                    "Error embedding batch %d/%d", batch_number, total_batches
                )
                msg = f"Embedding batch {batch_number} failed: {exc}"
                raise UpstreamError(msg, model=self.model) from exc

            if len(response.data) != len(batch):
                msg = (
                    f"Embedding batch {batch_number} returned {len(response.data)} "
                    f"vectors for {len(batch)} texts"
                )
                raise UpstreamError(msg, model=self.model)
            embeddings.extend(_to_vector(item.embedding) for item in response.data)
            logger.info("Embedded batch %d/%d", batch_number, total_batches)

            if self.batch_delay > 0 and batch_number < total_batches:
                await asyncio.sleep(self.batch_delay)

        return embeddings
