"""Test configuration and fixtures for AdvisorEngine tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock services and API responses
- Model client fixtures
- Vector index and retrieval fixtures
- Conversation fixtures
- Business profile factories
"""

import hashlib
from collections.abc import AsyncIterator
from unittest.mock import AsyncMock, Mock, patch

import numpy as np
import pytest

from advisor.assessment import BusinessProfile
from advisor.compression import ContextCompressor
from advisor.conversation import ConversationOrchestrator
from advisor.document_processing import TextChunker
from advisor.embeddings import EmbeddingService
from advisor.llm import LLMClient
from advisor.models import ConversationTurn
from advisor.retrieval import KnowledgeBaseRetrieval
from advisor.retrieval_cache import CachedKnowledgeBaseRetrieval
from advisor.storage import SQLiteConversationStore
from advisor.vector_store import FaissVectorIndex, VectorRecord


class TestConstants:
    """Centralized test constants to avoid repetition across test files."""

    # API Configuration
    TEST_API_KEY = "test-key"
    TEST_OPENAI_MODEL = "text-embedding-3-small"
    DEFAULT_EMBEDDING_DIMENSION = 384

    # Text Chunking Configuration
    SMALL_CHUNK_SIZE = 100
    SMALL_CHUNK_OVERLAP = 20
    DEFAULT_CHUNK_SIZE = 500
    DEFAULT_CHUNK_OVERLAP = 100

    # Conversation
    TEST_GUID = "conv-123"


KNOWLEDGE_BASE = {
    "agriculture": [
        ("ag_doc_chunk_000", "Satellite imagery helps farmers monitor crop health."),
        ("ag_doc_chunk_001", "Soil sensors report moisture levels every hour."),
        ("ag_doc_chunk_002", "Drones can spray fertiliser on targeted field zones."),
    ],
    "medical": [
        ("med_doc_chunk_000", "Scheduling models reduce patient wait times."),
    ],
    "all_industries": [
        ("gen_doc_chunk_000", "SMEC AI offers free one-on-one consultations."),
        ("gen_doc_chunk_001", "Short courses teach AI fundamentals to managers."),
    ],
}


class MockEmbeddingService:
    """Mock embedding service for testing without API calls.

    Generates deterministic embeddings based on text content hash, so a query
    identical to a stored text scores 1.0 and unrelated texts score near 0.
    """

    def __init__(
        self, dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION
    ) -> None:
        """Initialize mock embedding service.

        Args:
            dimension: Dimensionality of generated embeddings.
        """
        self.dimension = dimension
        self.calls = 0

    def embed(self, text: str) -> np.ndarray:
        """Generate deterministic mock embedding based on text hash."""
        seed = int.from_bytes(
            hashlib.sha256(text.lower().encode("utf-8")).digest()[:8],
            byteorder="big",
            signed=False,
        )
        rng = np.random.default_rng(seed)
        embedding = rng.normal(0, 1, self.dimension)
        return (embedding / np.linalg.norm(embedding)).astype(np.float32)

    async def get_embedding(self, text: str) -> np.ndarray:
        self.calls += 1
        return self.embed(text)

    async def get_embeddings_batch(
        self,
        texts: list[str],
        batch_size: int | None = None,  # noqa: ARG002
    ) -> list[np.ndarray]:
        self.calls += 1
        return [self.embed(text) for text in texts]


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def create_mock_openai_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response.

    Args:
        embeddings: List of embedding vectors to return.

    Returns:
        Mock object representing OpenAI embeddings API response.
    """
    mock_response = Mock()
    mock_response.data = [Mock(embedding=emb) for emb in embeddings]
    return mock_response


def create_mock_chat_response(content: str | None) -> Mock:
    """Create a mock OpenAI chat completion response.

    Args:
        content: The content for the chat completion response.

    Returns:
        Mock object representing OpenAI chat completion response.
    """
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=content))]
    return mock_response


def create_mock_stream(fragments: list[str | None], error: Exception | None = None):
    """Create a mock streaming chat completion.

    Args:
        fragments: Delta contents to emit, in order. None emits an empty delta.
        error: Raised after the fragments, if given.

    Returns:
        Async iterator of mock chunks.
    """

    async def _stream() -> AsyncIterator[Mock]:
        for fragment in fragments:
            yield Mock(choices=[Mock(delta=Mock(content=fragment))])
        if error is not None:
            raise error

    return _stream()


@pytest.fixture
def mock_stream_factory():
    """Expose create_mock_stream to tests."""
    return create_mock_stream


@pytest.fixture
def openai_response_factory():
    """Expose create_mock_openai_response to tests."""
    return create_mock_openai_response


@pytest.fixture
def knowledge_base():
    """Namespace -> [(id, text)] documents loaded by ``seed_index``."""
    return KNOWLEDGE_BASE


@pytest.fixture
def openai_embeddings_api_mock():
    """Patch the async embeddings endpoint of the OpenAI SDK."""
    with patch(
        "openai.resources.embeddings.AsyncEmbeddings.create",
        new_callable=AsyncMock,
    ) as mock_create:
        yield mock_create


@pytest.fixture
def embedding_service():
    """Default EmbeddingService with test API key."""
    return EmbeddingService(api_key=TestConstants.TEST_API_KEY)


@pytest.fixture
def llm_factory():
    """Factory for LLMClient instances backed by a mocked OpenAI client.

    The mocked ``create`` is reachable as ``llm.client.chat.completions.create``.
    """

    def _create_llm(
        content: str | None = "Test response",
        side_effect=None,
        max_concurrency: int = 4,
        stream: list[str | None] | None = None,
    ) -> LLMClient:
        client = Mock()
        client.close = AsyncMock()
        client.chat.completions.create = AsyncMock(
            return_value=(
                create_mock_stream(stream)
                if stream is not None
                else create_mock_chat_response(content)
            ),
            side_effect=side_effect,
        )
        return LLMClient(client=client, max_concurrency=max_concurrency)

    return _create_llm


@pytest.fixture
def llm(llm_factory):
    """LLMClient that answers every call with 'Test response'."""
    return llm_factory()


@pytest.fixture
def mock_embedding_service():
    """Fresh MockEmbeddingService per test so call counts start at zero."""
    return MockEmbeddingService()


@pytest.fixture
def text_chunker_small():
    """Text chunker configured for small chunks (100/20)."""
    return TextChunker(
        chunk_size=TestConstants.SMALL_CHUNK_SIZE,
        overlap=TestConstants.SMALL_CHUNK_OVERLAP,
    )


@pytest.fixture
def faiss_index(tmp_path) -> FaissVectorIndex:
    """Empty FAISS index persisted under a temporary directory."""
    return FaissVectorIndex(
        index_dir=tmp_path / "faiss",
        db_path=tmp_path / "vector_metadata.db",
    )


@pytest.fixture
def seed_index(faiss_index, mock_embedding_service):
    """Async helper that loads KNOWLEDGE_BASE (or given docs) into the index."""

    async def _seed(documents: dict[str, list[tuple[str, str]]] | None = None):
        for namespace, docs in (documents or KNOWLEDGE_BASE).items():
            records = [
                VectorRecord(
                    id=doc_id,
                    vector=mock_embedding_service.embed(text),
                    metadata={
                        "text": text,
                        "industry": namespace,
                        "doc_id": doc_id.rsplit("_chunk_", 1)[0],
                        "title": f"{namespace} guide",
                        "source_url": f"https://example.com/{namespace}",
                        "token_count": len(text) // 4,
                        "chunk_index": int(doc_id.rsplit("_", 1)[1]),
                    },
                )
                for doc_id, text in docs
            ]
            await faiss_index.upsert(namespace, records)
        return faiss_index

    return _seed


@pytest.fixture
def retrieval(faiss_index, mock_embedding_service) -> KnowledgeBaseRetrieval:
    """Uncached retrieval over the temporary index."""
    return KnowledgeBaseRetrieval(faiss_index, mock_embedding_service)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cached_retrieval(retrieval, fake_clock) -> CachedKnowledgeBaseRetrieval:
    """Cached retrieval with 300s results, 3600s embeddings and a fake clock."""
    return CachedKnowledgeBaseRetrieval(
        retrieval,
        result_ttl=300,
        embedding_ttl=3600,
        cleanup_interval=300,
        clock=fake_clock,
    )


@pytest.fixture
def conversation_store(tmp_path) -> SQLiteConversationStore:
    return SQLiteConversationStore(tmp_path / "conversations.db")


@pytest.fixture
def orchestrator_factory():
    """Factory for orchestrators with a given token budget."""

    def _create(llm: LLMClient, token_budget: int = 8000) -> ConversationOrchestrator:
        return ConversationOrchestrator(ContextCompressor(llm, token_budget=token_budget))

    return _create


@pytest.fixture
def history_factory():
    """Build alternating user/assistant histories."""

    def _create(
        user_turns: int,
        *,
        with_system: bool = False,
        content: str = "message",
    ) -> list[ConversationTurn]:
        history = []
        if with_system:
            history.append(ConversationTurn(role="system", content="caller prompt"))
        for i in range(user_turns):
            history.append(ConversationTurn(role="user", content=f"{content} {i}"))
            history.append(ConversationTurn(role="assistant", content=f"reply {i}"))
        return history

    return _create


@pytest.fixture
def business_profile_factory():
    """Factory for valid BusinessProfile instances with field overrides."""

    def _create(**overrides) -> BusinessProfile:
        fields = {
            "industry": "agriculture",
            "size": "small",
            "digital_maturity": "developing",
            "budget": "medium",
            "technical_capacity": "limited",
        }
        fields.update(overrides)
        return BusinessProfile(**fields)

    return _create
