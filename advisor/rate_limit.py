"""Sliding-window rate limiting with in-memory and Redis backends.

Both backends make the same decision for the same request sequence: entries
older than the window are dropped, the current request is recorded, and the
request is admitted iff the count including it does not exceed the limit.
"""

import hashlib
import math
import random
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Protocol

from redis.asyncio import Redis

from .config import config
from .errors import ConfigurationError

logger = config.get_logger(__name__)

CLEANUP_PROBABILITY = 0.01
CONVERSATION_PATHS = ("/api/chat", "/api/conversation", "/api/messages")


@dataclass(frozen=True)
class RateLimitTier:
    """Request allowance per window."""

    max: int
    window_seconds: int


RATE_LIMITS: dict[str, RateLimitTier] = {
    "UNAUTH": RateLimitTier(max=5, window_seconds=60),
    "AUTH": RateLimitTier(max=60, window_seconds=60),
    "CONVO": RateLimitTier(max=20, window_seconds=60),
}


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one admission check. ``reset`` is epoch milliseconds."""

    success: bool
    limit: int
    remaining: int
    reset: int
    retry_after: int | None = None


@dataclass(frozen=True)
class WindowHit:
    """What a backend saw when recording one request."""

    success: bool
    count: int
    reset: int


@dataclass(frozen=True)
class RateLimitWindowEntry:
    """One recorded request."""

    timestamp: int
    request_id: str


class SlidingWindowBackend(Protocol):
    """Records a request and counts the requests inside the window."""

    async def hit(
        self, key: str, limit: int, window_seconds: int, now_ms: int
    ) -> WindowHit: ...

    async def close(self) -> None: ...


def rate_limit_key(identifier: str, tier: RateLimitTier) -> str:
    """Build the counter key for an identifier and tier."""  # noqa: DOC201
    return f"rate_limit:{identifier}:{tier.max}:{tier.window_seconds}"


def _request_id(now_ms: int) -> str:
    return f"{now_ms}-{uuid.uuid4().hex}"


@dataclass
class InMemorySlidingWindow:
    """Per-process request log.

    Each check prunes its own key; with probability ``cleanup_probability`` it
    also sweeps every key so idle identifiers do not accumulate.
    """

    cleanup_probability: float = CLEANUP_PROBABILITY
    rng: Callable[[], float] = random.random
    store: dict[str, list[RateLimitWindowEntry]] = field(default_factory=dict)

    def _sweep(self, window_start: int) -> None:
        for key in list(self.store):
            live = [entry for entry in self.store[key] if entry.timestamp > window_start]
            if live:
                self.store[key] = live
            else:
                del self.store[key]

    async def hit(
        self, key: str, limit: int, window_seconds: int, now_ms: int
    ) -> WindowHit:
        """Record a request and count the live window.

        Returns:
            Admission decision, count including this request, and reset time.
        """
        window_ms = window_seconds * 1000
        window_start = now_ms - window_ms

        entries = [entry for entry in self.store.get(key, []) if entry.timestamp > window_start]
        entries.append(RateLimitWindowEntry(now_ms, _request_id(now_ms)))
        self.store[key] = entries

        if self.rng() < self.cleanup_probability:
            self._sweep(window_start)

        count = len(entries)
        return WindowHit(success=count <= limit, count=count, reset=now_ms + window_ms)

    async def close(self) -> None:
        """Nothing to release."""


class RedisSlidingWindow:
    """Shared request log in a Redis sorted set per key.

    Expired members are removed, the rest counted and the new request added in
    a single MULTI/EXEC transaction. Keys expire after twice the window.
    """

    def __init__(self, client: Redis) -> None:
        """Use an existing ``redis.asyncio`` client."""
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisSlidingWindow":
        """Connect lazily to the Redis server at ``url``."""  # noqa: DOC201
        return cls(Redis.from_url(url))

    async def hit(
        self, key: str, limit: int, window_seconds: int, now_ms: int
    ) -> WindowHit:
        """Record a request and count the live window.

        Raises:
            RuntimeError: If the transaction returns no results.

        Returns:
            Admission decision, count including this request, and reset time.
        """
        window_ms = window_seconds * 1000
        window_start = now_ms - window_ms

        async with self.client.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)
            pipe.zadd(key, {_request_id(now_ms): now_ms})
            pipe.expire(key, window_seconds * 2)
            results = await pipe.execute()

        if not results:
            msg = "Redis transaction failed"
            raise RuntimeError(msg)

        # zcard ran before the zadd, so count the current request on top
        count = int(results[1]) + 1
        return WindowHit(success=count <= limit, count=count, reset=now_ms + window_ms)

    async def close(self) -> None:
        """Close the Redis connection pool."""
        await self.client.aclose()


class RateLimiter:
    """Admission control in front of externally triggered operations."""

    def __init__(
        self,
        backend: SlidingWindowBackend,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            backend: Where request logs are kept.
            clock: Source of the current time in seconds.
        """
        self.backend = backend
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def check_rate_limit(
        self, identifier: str, tier: RateLimitTier
    ) -> RateLimitResult:
        """Record a request for ``identifier`` and decide whether to admit it.

        A backend failure admits the request and is logged.

        Returns:
            The decision with remaining allowance, reset time and, when denied,
            seconds until retry.
        """
        key = rate_limit_key(identifier, tier)
        now_ms = self._now_ms()
        try:
            hit = await self.backend.hit(key, tier.max, tier.window_seconds, now_ms)
        except Exception:
            logger.exception("Rate limiting error for %s, failing open", identifier)
            return RateLimitResult(
                success=True,
                limit=tier.max,
                remaining=tier.max - 1,
                reset=now_ms + tier.window_seconds * 1000,
            )

        retry_after = None
        if not hit.success:
            retry_after = math.ceil((hit.reset - self._now_ms()) / 1000)
            logger.warning("Rate limit exceeded for %s (%d requests)", identifier, hit.count)
        return RateLimitResult(
            success=hit.success,
            limit=tier.max,
            remaining=max(0, tier.max - hit.count),
            reset=hit.reset,
            retry_after=retry_after,
        )

    async def close(self) -> None:
        """Release the backend."""
        await self.backend.close()


def create_rate_limiter(
    backend: str | None = None,
    redis_url: str | None = None,
) -> RateLimiter:
    """Build a limiter for the configured backend.

    Args:
        backend: ``memory`` or ``redis``. If None, uses config.RATE_LIMIT_BACKEND.
        redis_url: Redis connection URL. If None, uses config.REDIS_URL.

    Raises:
        ConfigurationError: If the backend is unknown, or redis is selected
            without a URL.

    Returns:
        A ready RateLimiter.
    """
    backend = (backend or config.RATE_LIMIT_BACKEND).lower()
    if backend == "memory":
        logger.info("Using in-memory rate limiting")
        return RateLimiter(InMemorySlidingWindow())
    if backend == "redis":
        url = redis_url or config.REDIS_URL
        if not url:
            msg = "REDIS_URL is required when RATE_LIMIT_BACKEND is 'redis'."
            raise ConfigurationError(msg)
        logger.info("Using Redis rate limiting")
        return RateLimiter(RedisSlidingWindow.from_url(url))
    msg = f"Unsupported rate limit backend: {backend}"
    raise ConfigurationError(msg)


def get_rate_limit_tier(path: str, *, authenticated: bool) -> RateLimitTier:
    """Choose the tier for a request path.

    Returns:
        UNAUTH for anonymous callers, CONVO for authenticated conversation
        endpoints and AUTH otherwise.
    """
    if not authenticated:
        return RATE_LIMITS["UNAUTH"]
    if any(prefix in path for prefix in CONVERSATION_PATHS):
        return RATE_LIMITS["CONVO"]
    return RATE_LIMITS["AUTH"]


def _lower_keys(headers: Mapping[str, str]) -> dict[str, str]:
    return {name.lower(): value for name, value in headers.items()}


def get_client_identifier(headers: Mapping[str, str]) -> str:
    """Identify an anonymous caller by address.

    Returns:
        ``ip:`` followed by the first forwarded address, the real-IP header, or
        ``unknown``.
    """
    lowered = _lower_keys(headers)
    forwarded = lowered.get("x-forwarded-for", "").split(",")[0].strip()
    ip = forwarded or lowered.get("x-real-ip") or "unknown"
    return f"ip:{ip}"


def get_user_identifier(headers: Mapping[str, str], user_id: str | None = None) -> str:
    """Identify a caller by user, then API key, then address.

    Returns:
        ``user:<id>``, ``key:<digest prefix>`` or the client identifier.
    """
    if user_id:
        return f"user:{user_id}"
    api_key = _lower_keys(headers).get("x-api-key")
    if api_key:
        digest = hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]
        return f"key:{digest}"
    return get_client_identifier(headers)


def create_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Render a decision as response headers.

    Returns:
        ``X-RateLimit-*`` headers, plus ``Retry-After`` and an error header
        when the request was denied.
    """
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }
    if not result.success:
        headers["X-RateLimit-Error"] = "Rate limit exceeded"
        if result.retry_after:
            headers["Retry-After"] = str(result.retry_after)
    return headers
