"""AdvisorEngine - staged advisory chat with knowledge-base grounding."""

from .assessment import BusinessProfile, OpportunityAssessor
from .chat import ChatService, format_event
from .compression import ContextCompressor
from .conversation import ConversationOrchestrator, InMemoryConversationStateStore
from .embeddings import EmbeddingService
from .errors import (
    AdvisorError,
    ConfigurationError,
    GenerationError,
    RetrievalError,
    UpstreamError,
    ValidationError,
)
from .ingestion import KnowledgeBaseIngestor
from .llm import LLMClient
from .models import ConversationTurn, RelevantDocument, Stage
from .rate_limit import RateLimiter, create_rate_limiter
from .retrieval import KnowledgeBaseRetrieval, RetrievalOptions
from .retrieval_cache import CachedKnowledgeBaseRetrieval
from .services import ServiceRecommendationEngine
from .storage import SQLiteConversationStore
from .vector_store import FaissVectorIndex, get_vector_index

__version__ = "0.1.0"

__all__ = [
    "AdvisorError",
    "BusinessProfile",
    "CachedKnowledgeBaseRetrieval",
    "ChatService",
    "ConfigurationError",
    "ContextCompressor",
    "ConversationOrchestrator",
    "ConversationTurn",
    "EmbeddingService",
    "FaissVectorIndex",
    "GenerationError",
    "InMemoryConversationStateStore",
    "KnowledgeBaseIngestor",
    "KnowledgeBaseRetrieval",
    "LLMClient",
    "OpportunityAssessor",
    "RateLimiter",
    "RelevantDocument",
    "RetrievalError",
    "RetrievalOptions",
    "SQLiteConversationStore",
    "ServiceRecommendationEngine",
    "Stage",
    "UpstreamError",
    "ValidationError",
    "create_rate_limiter",
    "format_event",
    "get_vector_index",
]
