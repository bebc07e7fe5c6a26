"""Knowledge-base retrieval over industry namespaces."""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from typing import Any, Protocol

import numpy as np

from .cache import TTLCache
from .config import config
from .errors import RetrievalError
from .llm import LLMClient
from .models import DocumentMetadata, RelevantDocument
from .vector_store import VectorIndex, VectorMatch

logger = config.get_logger(__name__)

ALL_INDUSTRIES_NAMESPACE = "all_industries"

NAMESPACE_ALIASES: dict[str, str] = {
    "agriculture": "agriculture",
    "clean_energy": "clean_energy",
    "clean-energy": "clean_energy",
    "medical": "medical",
    "healthcare": "medical",
    "enabling_capabilities": "enabling_capabilities",
    "enabling-capabilities": "enabling_capabilities",
    "manufacturing": "enabling_capabilities",
    "technology": "enabling_capabilities",
    "all_industries": ALL_INDUSTRIES_NAMESPACE,
    "all-industries": ALL_INDUSTRIES_NAMESPACE,
    "smec-services": ALL_INDUSTRIES_NAMESPACE,
    "smec_services": ALL_INDUSTRIES_NAMESPACE,
    "general": ALL_INDUSTRIES_NAMESPACE,
}

MIN_EXPANDED_QUERY_LENGTH = 10
MAX_EXPANDED_QUERIES = 3


class EmbeddingProvider(Protocol):
    """Anything that turns a query into a vector."""

    async def get_embedding(self, text: str) -> np.ndarray: ...


@dataclass(frozen=True)
class RetrievalOptions:
    """Knobs for a single retrieval call.

    ``use_cache`` and ``timeout`` only apply to the cached client.
    """

    top_k: int = 3
    min_score: float = 0.3
    include_all_industries: bool = False
    metadata_filter: dict[str, Any] | None = None
    use_cache: bool = True
    timeout: float = 2.0


BASE_OPTIONS = RetrievalOptions(top_k=5)
CROSS_INDUSTRY_OPTIONS = RetrievalOptions(top_k=10)
EXPANDED_OPTIONS = RetrievalOptions(top_k=8)


def map_industry_to_namespace(industry: str) -> str:
    """Resolve an industry label to its vector namespace.

    Returns:
        The canonical namespace; unknown labels are lower-cased unchanged.
    """
    label = industry.strip().lower()
    return NAMESPACE_ALIASES.get(label, label)


def to_relevant_document(match: VectorMatch, default_industry: str) -> RelevantDocument:
    """Convert a raw vector hit into a RelevantDocument.

    Returns:
        The document with text and provenance pulled from the hit's metadata.
    """
    metadata = match.metadata
    return RelevantDocument(
        id=match.id,
        content=str(metadata.get("text") or ""),
        score=float(match.score),
        metadata=DocumentMetadata(
            industry=str(metadata.get("industry") or default_industry),
            source_url=str(metadata.get("source_url") or ""),
            doc_id=str(metadata.get("doc_id") or ""),
            title=str(metadata.get("title") or ""),
            token_count=int(metadata.get("token_count") or 0),
            chunk_index=int(metadata.get("chunk_index") or 0),
        ),
    )


def merge_documents(documents: Iterable[RelevantDocument]) -> list[RelevantDocument]:
    """Deduplicate documents by id, keeping the higher score.

    Returns:
        Unique documents sorted by descending score.
    """
    unique: dict[str, RelevantDocument] = {}
    for document in documents:
        current = unique.get(document.id)
        if current is None or current.score < document.score:
            unique[document.id] = document
    return sorted(unique.values(), key=lambda doc: doc.score, reverse=True)


def rank_documents(
    documents: Iterable[RelevantDocument],
    min_score: float,
    top_k: int,
) -> list[RelevantDocument]:
    """Merge, drop anything under ``min_score`` and truncate to ``top_k``.

    Returns:
        At most ``top_k`` documents ordered by descending score.
    """
    merged = merge_documents(documents)
    return [doc for doc in merged if doc.score >= min_score][: max(top_k, 0)]


class KnowledgeBaseRetrieval:
    """Embeds queries and searches the per-industry knowledge base."""

    def __init__(
        self,
        vector_index: VectorIndex,
        embedding_service: EmbeddingProvider,
        llm: LLMClient | None = None,
        embedding_cache: TTLCache[np.ndarray] | None = None,
    ) -> None:
        """Wire the retrieval client to its collaborators.

        Args:
            vector_index: Namespaced vector index to search.
            embedding_service: Produces query embeddings.
            llm: Model client used for query expansion. Expansion is skipped
                when absent.
            embedding_cache: Optional cache of query embeddings keyed by query
                text.
        """
        self.vector_index = vector_index
        self.embedding_service = embedding_service
        self.llm = llm
        self.embedding_cache = embedding_cache

    async def generate_query_embedding(self, query: str) -> np.ndarray:
        """Embed a query, consulting the embedding cache first.

        Raises:
            RetrievalError: If the embedding provider fails.

        Returns:
            The query vector.
        """
        if self.embedding_cache is not None:
            cached = self.embedding_cache.get(query)
            if cached is not None:
                return cached

        try:
            embedding = await self.embedding_service.get_embedding(query)
        except Exception as exc:
            logger.exception("Error generating query embedding")
            msg = "Failed to generate query embedding"
            raise RetrievalError(msg) from exc

        if self.embedding_cache is not None:
            self.embedding_cache.set(query, embedding)
        return embedding

    async def _query_namespace(
        self,
        namespace: str,
        vector: np.ndarray,
        top_k: int,
        metadata_filter: dict[str, Any] | None,
        default_industry: str,
    ) -> list[RelevantDocument]:
        matches = await self.vector_index.query(
            namespace,
            vector,
            top_k,
            metadata_filter=metadata_filter,
        )
        return [to_relevant_document(match, default_industry) for match in matches]

    async def get_relevant_docs(
        self,
        industry: str,
        query: str,
        options: RetrievalOptions | None = None,
    ) -> list[RelevantDocument]:
        """Retrieve the passages most relevant to a query for one industry.

        The primary namespace is searched with ``top_k``. When
        ``include_all_industries`` is set, the shared namespace is searched as
        well with half as many results. A failure in that secondary search is
        logged and skipped.

        Args:
            industry: Industry label or alias.
            query: Free-text query.
            options: Retrieval options. Defaults to ``top_k=5``,
                ``min_score=0.3``.

        Raises:
            RetrievalError: If the query cannot be embedded or the primary
                namespace cannot be searched.

        Returns:
            Documents ordered by descending score, all at or above
            ``min_score``, at most ``top_k``.
        """
        options = options or BASE_OPTIONS
        vector = await self.generate_query_embedding(query)
        namespace = map_industry_to_namespace(industry)

        try:
            documents = await self._query_namespace(
                namespace, vector, options.top_k, options.metadata_filter, industry
            )
        except Exception as exc:
            logger.exception("Error searching namespace '%s'", namespace)
            msg = f"Failed to search namespace '{namespace}'"
            raise RetrievalError(msg, namespace=namespace) from exc

        if options.include_all_industries and namespace != ALL_INDUSTRIES_NAMESPACE:
            try:
                documents += await self._query_namespace(
                    ALL_INDUSTRIES_NAMESPACE,
                    vector,
                    math.ceil(options.top_k / 2),
                    options.metadata_filter,
                    "general",
                )
            except Exception:
                logger.warning(
                    "Could not search namespace '%s'",
                    ALL_INDUSTRIES_NAMESPACE,
                    exc_info=True,
                )

        results = rank_documents(documents, options.min_score, options.top_k)
        logger.debug(
            "Retrieved %d documents for '%s' from namespace '%s'",
            len(results),
            query[:50],
            namespace,
        )
        return results

    async def search_across_industries(
        self,
        query: str,
        industries: Sequence[str] | None = None,
        options: RetrievalOptions | None = None,
    ) -> list[RelevantDocument]:
        """Search several industry namespaces with one query embedding.

        Args:
            query: Free-text query.
            industries: Industry labels to search. Empty or None searches every
                namespace the index reports.
            options: Retrieval options. Defaults to ``top_k=10``.

        Returns:
            Documents ordered by descending score, at most ``top_k``.
        """
        options = options or CROSS_INDUSTRY_OPTIONS
        if not industries:
            industries = await self.get_available_industries()
        if not industries:
            return []

        vector = await self.generate_query_embedding(query)
        per_namespace = math.ceil(options.top_k / len(industries))

        documents: list[RelevantDocument] = []
        for industry in industries:
            namespace = map_industry_to_namespace(industry)
            try:
                documents += await self._query_namespace(
                    namespace, vector, per_namespace, options.metadata_filter, industry
                )
            except Exception:
                logger.warning(
                    "Could not search namespace '%s'", namespace, exc_info=True
                )

        return rank_documents(documents, options.min_score, options.top_k)

    async def get_related_documents(
        self,
        document_id: str,
        industry: str,
        options: RetrievalOptions | None = None,
    ) -> list[RelevantDocument]:
        """Find passages similar to a stored passage.

        Raises:
            RetrievalError: If the source passage is missing or has no text.

        Returns:
            Similar documents excluding the source, at most ``top_k``.
        """
        options = options or BASE_OPTIONS
        namespace = map_industry_to_namespace(industry)
        records = await self.vector_index.fetch(namespace, [document_id])
        text = records.get(document_id, {}).get("text")
        if not text:
            msg = f"Document '{document_id}' not found or has no content"
            raise RetrievalError(msg, document_id=document_id, namespace=namespace)

        results = await self.get_relevant_docs(
            industry, str(text), replace(options, top_k=options.top_k + 1)
        )
        return [doc for doc in results if doc.id != document_id][: options.top_k]

    async def generate_expanded_queries(self, query: str, industry: str) -> list[str]:
        """Ask the model for related phrasings of a query.

        Returns:
            The original query followed by up to three model-generated variants.
            Only the original is returned when no model is configured or the
            call fails.
        """
        if self.llm is None:
            return [query]

        messages = [
            {
                "role": "system",
                "content": (
                    f"You are an expert in {industry} and AI applications for "
                    "small-medium enterprises. Generate 3 semantically related but "
                    "distinct queries that would help find relevant information "
                    "for the original query. Focus on practical, SME-relevant "
                    "aspects."
                ),
            },
            {
                "role": "user",
                "content": (
                    f'Original query: "{query}"\n\n'
                    "Generate 3 expanded queries (one per line, no numbers or "
                    "bullets):"
                ),
            },
        ]
        try:
            text = await self.llm.complete(
                messages,
                model=config.EXPANSION_MODEL,
                temperature=0.7,
                max_tokens=200,
            )
        except Exception:
            logger.warning(
                "Could not generate expanded queries, using original", exc_info=True
            )
            return [query]

        variants = [
            line.strip()
            for line in text.splitlines()
            if len(line.strip()) > MIN_EXPANDED_QUERY_LENGTH
        ]
        return [query, *variants[:MAX_EXPANDED_QUERIES]]

    async def expanded_search(
        self,
        query: str,
        industry: str,
        options: RetrievalOptions | None = None,
    ) -> list[RelevantDocument]:
        """Search with the query plus model-generated variants.

        Falls back to a plain search when any expanded search fails.

        Returns:
            Deduplicated documents ordered by descending score, at most
            ``top_k``.
        """
        options = options or EXPANDED_OPTIONS
        queries = await self.generate_expanded_queries(query, industry)
        per_query = replace(options, top_k=math.ceil(options.top_k / len(queries)))

        try:
            documents: list[RelevantDocument] = []
            for expanded_query in queries:
                documents += await self.get_relevant_docs(
                    industry, expanded_query, per_query
                )
        except RetrievalError:
            logger.exception("Error in expanded search, falling back to plain search")
            return await self.get_relevant_docs(industry, query, options)

        return merge_documents(documents)[: options.top_k]

    async def get_available_industries(self) -> list[str]:
        """List the namespaces present in the index.

        Returns:
            Namespace names, or an empty list if the index cannot be described.
        """
        try:
            stats = await self.vector_index.describe_stats()
        except Exception:
            logger.exception("Error getting available industries")
            return []
        return list(stats.namespaces)

    async def get_retrieval_stats(self) -> dict[str, Any]:
        """Describe the index contents.

        Returns:
            Total vectors, namespace names and counts, and dimension; empty if
            the index cannot be described.
        """
        try:
            stats = await self.vector_index.describe_stats()
        except Exception:
            logger.exception("Error getting retrieval stats")
            return {}
        return {
            "total_vectors": stats.total_count,
            "namespaces": list(stats.namespaces),
            "namespace_counts": dict(stats.namespaces),
            "dimension": stats.dimension,
        }
