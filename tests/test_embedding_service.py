"""Tests for EmbeddingService class."""

import os
from unittest.mock import AsyncMock, call, patch

import numpy as np
import pytest

from advisor import EmbeddingService
from advisor.config import config
from advisor.errors import UpstreamError, ValidationError


def test_init_with_api_key() -> None:
    service = EmbeddingService(api_key="test-key", model="text-embedding-3-small")
    assert service.model == "text-embedding-3-small"
    assert service.client.api_key == "test-key"


def test_init_with_env_api_key() -> None:
    with patch.dict(os.environ, {"OPENAI_API_KEY": "env-key"}):
        service = EmbeddingService()
        assert service.client.api_key == "env-key"


def test_init_default_model(embedding_service) -> None:
    assert embedding_service.model == config.EMBEDDING_MODEL


@pytest.mark.asyncio
async def test_get_embedding_success(
    openai_embeddings_api_mock, openai_response_factory, embedding_service
) -> None:
    openai_embeddings_api_mock.return_value = openai_response_factory(
        [[0.1, 0.2, 0.3, 0.4, 0.5]]
    )

    result = await embedding_service.get_embedding("test text")

    openai_embeddings_api_mock.assert_awaited_once_with(
        model=embedding_service.model,
        input="test text",
    )
    assert isinstance(result, np.ndarray)
    assert result.dtype == np.float32
    np.testing.assert_allclose(result, [0.1, 0.2, 0.3, 0.4, 0.5], rtol=1e-6)


@pytest.mark.asyncio
async def test_get_embedding_api_error(
    openai_embeddings_api_mock, embedding_service
) -> None:
    openai_embeddings_api_mock.side_effect = RuntimeError("API Error")

    with pytest.raises(
        UpstreamError, match="Embedding request failed: API Error"
    ) as exc_info:
        await embedding_service.get_embedding("test text")

    assert exc_info.value.public_code == "EXTERNAL_SERVICE_ERROR"
    assert isinstance(exc_info.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_get_embedding_rejects_blank_text(
    openai_embeddings_api_mock, embedding_service
) -> None:
    with pytest.raises(ValidationError, match="empty text"):
        await embedding_service.get_embedding("   ")

    openai_embeddings_api_mock.assert_not_called()


@pytest.mark.asyncio
async def test_get_embeddings_batch_with_batching(
    openai_embeddings_api_mock, openai_response_factory, embedding_service
) -> None:
    openai_embeddings_api_mock.side_effect = [
        openai_response_factory([[0.1, 0.2], [0.3, 0.4]]),
        openai_response_factory([[0.5, 0.6]]),
    ]
    texts = ["text1", "text2", "text3"]

    results = await embedding_service.get_embeddings_batch(texts, batch_size=2)

    assert openai_embeddings_api_mock.await_count == 2
    openai_embeddings_api_mock.assert_any_await(
        model=embedding_service.model, input=["text1", "text2"]
    )
    openai_embeddings_api_mock.assert_any_await(
        model=embedding_service.model, input=["text3"]
    )
    assert len(results) == 3
    np.testing.assert_allclose(results[2], [0.5, 0.6], rtol=1e-6)


@pytest.mark.asyncio
async def test_get_embeddings_batch_empty_list(
    openai_embeddings_api_mock, embedding_service
) -> None:
    results = await embedding_service.get_embeddings_batch([])

    openai_embeddings_api_mock.assert_not_called()
    assert results == []


@pytest.mark.asyncio
async def test_get_embeddings_batch_partial_failure(
    openai_embeddings_api_mock, openai_response_factory, embedding_service
) -> None:
    openai_embeddings_api_mock.side_effect = [
        openai_response_factory([[0.1, 0.2]]),
        RuntimeError("Second batch failed"),
    ]

    with pytest.raises(UpstreamError, match="Embedding batch 2 failed"):
        await embedding_service.get_embeddings_batch(
            ["text1", "text2", "text3"], batch_size=1
        )

    assert openai_embeddings_api_mock.await_count == 2


@pytest.mark.asyncio
async def test_get_embeddings_batch_count_mismatch(
    openai_embeddings_api_mock, openai_response_factory, embedding_service
) -> None:
    openai_embeddings_api_mock.return_value = openai_response_factory([[0.1, 0.2]])

    with pytest.raises(UpstreamError, match="returned 1 vectors for 2 texts"):
        await embedding_service.get_embeddings_batch(["text1", "text2"])


@pytest.mark.asyncio
async def test_get_embeddings_batch_pauses_between_batches(
    openai_embeddings_api_mock, openai_response_factory
) -> None:
    service = EmbeddingService(api_key="test-key", batch_delay=2.0)
    openai_embeddings_api_mock.side_effect = [
        openai_response_factory([[0.1]]),
        openai_response_factory([[0.2]]),
        openai_response_factory([[0.3]]),
    ]

    with patch("advisor.embeddings.asyncio.sleep", new_callable=AsyncMock) as sleep:
        results = await service.get_embeddings_batch(["a", "b", "c"], batch_size=1)

    assert len(results) == 3
    assert sleep.await_args_list == [call(2.0), call(2.0)]


def test_batch_delay_defaults_to_config(embedding_service) -> None:
    assert embedding_service.batch_delay == config.EMBEDDING_BATCH_DELAY_SECONDS


# Integration test that requires a real OpenAI API key
@pytest.mark.asyncio
@pytest.mark.skipif(
    not os.getenv("OPENAI_API_KEY"),
    reason="OPENAI_API_KEY environment variable not set",
)
async def test_real_api_single_embedding() -> None:
    service = EmbeddingService(model="text-embedding-3-small")

    try:
        embedding = await service.get_embedding("Precision farming for small farms.")
    except UpstreamError as exc:  # pragma: no cover - network dependent
        pytest.skip(f"OpenAI not reachable: {exc!s}")
    else:
        assert embedding.shape == (1536,)
        assert 0.99 <= np.linalg.norm(embedding) <= 1.01
