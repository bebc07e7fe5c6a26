"""Cached, time-bounded retrieval used on the chat path.

Retrieval here never raises: a timeout or upstream failure is answered from a
stale cache entry when one exists, otherwise with an empty list, so the
assistant can still answer without grounding passages.
"""

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Literal

import numpy as np

from .cache import TTLCache
from .config import config
from .llm import LLMClient
from .models import RelevantDocument
from .retrieval import EmbeddingProvider, KnowledgeBaseRetrieval, RetrievalOptions
from .vector_store import VectorIndex

logger = config.get_logger(__name__)

FAST_PROFILE = RetrievalOptions(top_k=3, min_score=0.4, timeout=1.0)
COMPREHENSIVE_PROFILE = RetrievalOptions(
    top_k=8,
    min_score=0.2,
    include_all_industries=True,
    timeout=5.0,
)

WARMUP_BATCH_SIZE = 5
WARMUP_PAUSE_SECONDS = 0.1

HEALTH_CHECK_INDUSTRY = "agriculture"
HEALTH_CHECK_QUERY = "AI crop monitoring"
DEGRADED_LATENCY_MS = 1000
UNHEALTHY_LATENCY_MS = 2000

HealthStatus = Literal["healthy", "degraded", "unhealthy"]


@dataclass(frozen=True)
class SearchRequest:
    """One entry of a batch search."""

    industry: str
    query: str
    options: RetrievalOptions | None = None


def default_options() -> RetrievalOptions:
    """Build the chat-path defaults from configuration.

    Returns:
        Options using the configured top_k, min_score and timeout.
    """
    return RetrievalOptions(
        top_k=config.RETRIEVAL_TOP_K,
        min_score=config.RETRIEVAL_MIN_SCORE,
        timeout=config.RETRIEVAL_TIMEOUT_SECONDS,
    )


def cache_key(industry: str, query: str, options: RetrievalOptions) -> str:
    """Build the result-cache key for a search.

    Returns:
        ``industry:query:top_k:min_score:include_all_industries``.
    """
    include_all = str(options.include_all_industries).lower()
    return f"{industry}:{query}:{options.top_k}:{options.min_score}:{include_all}"


class CachedKnowledgeBaseRetrieval:
    """Result and embedding caches plus timeouts around ``KnowledgeBaseRetrieval``.

    The embedding cache is shared with the wrapped retrieval client so every
    search made through either object reuses cached query vectors.
    """

    def __init__(
        self,
        retrieval: KnowledgeBaseRetrieval,
        *,
        result_ttl: float | None = None,
        embedding_ttl: float | None = None,
        cleanup_interval: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Wrap a retrieval client.

        Args:
            retrieval: Uncached retrieval client.
            result_ttl: Lifetime of cached results in seconds. If None, uses
                config.RESULT_CACHE_TTL_SECONDS.
            embedding_ttl: Lifetime of cached query embeddings in seconds. If
                None, uses config.EMBEDDING_CACHE_TTL_SECONDS.
            cleanup_interval: Seconds between background sweeps. If None, uses
                config.CACHE_CLEANUP_INTERVAL_SECONDS.
            clock: Source of the current time in seconds.
        """
        self.base = retrieval
        self.result_cache: TTLCache[list[RelevantDocument]] = TTLCache(
            config.RESULT_CACHE_TTL_SECONDS if result_ttl is None else result_ttl,
            clock=clock,
        )
        if retrieval.embedding_cache is None:
            retrieval.embedding_cache = TTLCache(
                config.EMBEDDING_CACHE_TTL_SECONDS
                if embedding_ttl is None
                else embedding_ttl,
                clock=clock,
            )
        self.embedding_cache: TTLCache[np.ndarray] = retrieval.embedding_cache
        self.cleanup_interval = (
            config.CACHE_CLEANUP_INTERVAL_SECONDS
            if cleanup_interval is None
            else cleanup_interval
        )
        self._cleanup_task: asyncio.Task[None] | None = None

    @classmethod
    def create(
        cls,
        vector_index: VectorIndex,
        embedding_service: EmbeddingProvider,
        llm: LLMClient | None = None,
        **kwargs: Any,  # noqa: ANN401
    ) -> "CachedKnowledgeBaseRetrieval":
        """Build the uncached client and wrap it.

        Returns:
            A cached retrieval client.
        """
        return cls(KnowledgeBaseRetrieval(vector_index, embedding_service, llm), **kwargs)

    async def get_relevant_docs(
        self,
        industry: str,
        query: str,
        options: RetrievalOptions | None = None,
    ) -> list[RelevantDocument]:
        """Retrieve passages, serving from cache when possible.

        A live cache entry is returned without any upstream call. Otherwise the
        search runs under ``options.timeout``; non-empty results are cached.

        Returns:
            Documents ordered by descending score, or a stale cached result or
            an empty list when the search fails or times out.
        """
        options = options or default_options()
        key = cache_key(industry, query, options)

        if options.use_cache:
            cached = self.result_cache.get(key)
            if cached is not None:
                return list(cached)

        try:
            results = await asyncio.wait_for(
                self.base.get_relevant_docs(industry, query, options),
                timeout=options.timeout,
            )
        except Exception:
            logger.warning("Retrieval failed for query '%s'", query[:50], exc_info=True)
            stale = self.result_cache.get_stale(key)
            if stale is not None:
                logger.warning("Returning stale cached results due to error")
                return list(stale)
            return []

        if options.use_cache and results:
            self.result_cache.set(key, list(results))
        return results

    async def fast_search(self, industry: str, query: str) -> list[RelevantDocument]:
        """Search with a tight timeout and a higher score floor."""  # noqa: DOC201
        return await self.get_relevant_docs(industry, query, FAST_PROFILE)

    async def comprehensive_search(
        self, industry: str, query: str
    ) -> list[RelevantDocument]:
        """Search more results across the shared namespace with a long timeout."""  # noqa: DOC201
        return await self.get_relevant_docs(industry, query, COMPREHENSIVE_PROFILE)

    async def batch_search(
        self, requests: Sequence[SearchRequest]
    ) -> list[list[RelevantDocument]]:
        """Run several searches concurrently.

        Returns:
            One result list per request, in request order. A failed request
            yields an empty list.
        """
        outcomes = await asyncio.gather(
            *(
                self.get_relevant_docs(request.industry, request.query, request.options)
                for request in requests
            ),
            return_exceptions=True,
        )
        results: list[list[RelevantDocument]] = []
        for request, outcome in zip(requests, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Batch search failed for '%s': %s", request.query[:50], outcome
                )
                results.append([])
            else:
                results.append(outcome)
        return results

    async def warmup_cache(self, queries: Sequence[tuple[str, str]]) -> None:
        """Pre-populate the result cache with ``(industry, query)`` pairs.

        Queries run in small concurrent batches with a short pause between
        batches.
        """
        logger.info("Warming up cache with %d common queries", len(queries))
        for start in range(0, len(queries), WARMUP_BATCH_SIZE):
            batch = queries[start : start + WARMUP_BATCH_SIZE]
            await self.batch_search(
                [SearchRequest(industry, query) for industry, query in batch]
            )
            if start + WARMUP_BATCH_SIZE < len(queries):
                await asyncio.sleep(WARMUP_PAUSE_SECONDS)
        logger.info("Cache warmup completed")

    def get_cache_stats(self) -> dict[str, Any]:
        """Report cache sizes and the result-cache hit rate.

        Returns:
            Mapping with ``embedding_cache_size``, ``result_cache_size`` and
            ``hit_rate`` (None before any lookup).
        """
        return {
            "embedding_cache_size": len(self.embedding_cache),
            "result_cache_size": len(self.result_cache),
            "hit_rate": self.result_cache.hit_rate,
        }

    def clear_cache(self) -> None:
        """Drop every cached result and embedding."""
        self.embedding_cache.clear()
        self.result_cache.clear()

    def cleanup_cache(self) -> int:
        """Evict expired entries from both caches.

        Returns:
            Number of entries removed.
        """
        removed = self.embedding_cache.cleanup() + self.result_cache.cleanup()
        if removed:
            logger.debug("Evicted %d expired cache entries", removed)
        return removed

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.cleanup_cache()

    def start_cleanup(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def close(self) -> None:
        """Stop the periodic sweep."""
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None

    async def health_check(self) -> dict[str, Any]:
        """Time one fast search against a known query.

        Returns:
            ``status`` (healthy, degraded or unhealthy), ``latency_ms`` and an
            ``error`` description when not healthy.
        """
        started = time.perf_counter()
        try:
            results = await self.fast_search(HEALTH_CHECK_INDUSTRY, HEALTH_CHECK_QUERY)
        except Exception as exc:
            logger.exception("Retrieval health check failed")
            return health_report(
                "unhealthy",
                round((time.perf_counter() - started) * 1000),
                str(exc) or type(exc).__name__,
            )

        latency_ms = round((time.perf_counter() - started) * 1000)
        if latency_ms > UNHEALTHY_LATENCY_MS:
            return health_report("unhealthy", latency_ms, "High latency detected")
        if latency_ms > DEGRADED_LATENCY_MS or not results:
            return health_report(
                "degraded", latency_ms, "Performance or quality issues"
            )
        return health_report("healthy", latency_ms)


def health_report(
    status: HealthStatus, latency_ms: int, error: str | None = None
) -> dict[str, Any]:
    """Shape a health-check result."""  # noqa: DOC201
    report: dict[str, Any] = {"status": status, "latency_ms": latency_ms}
    if error is not None:
        report["error"] = error
    return report
