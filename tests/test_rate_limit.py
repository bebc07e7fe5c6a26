"""Tests for sliding-window rate limiting."""

import hashlib
from unittest.mock import AsyncMock, Mock, patch

import pytest
from fakeredis import FakeAsyncRedis, FakeServer

from advisor.config import config
from advisor.errors import ConfigurationError
from advisor.rate_limit import (
    RATE_LIMITS,
    InMemorySlidingWindow,
    RateLimiter,
    RateLimitResult,
    RateLimitTier,
    RedisSlidingWindow,
    create_rate_limit_headers,
    create_rate_limiter,
    get_client_identifier,
    get_rate_limit_tier,
    get_user_identifier,
    rate_limit_key,
)

TIER = RateLimitTier(max=3, window_seconds=60)


@pytest.fixture
def memory_limiter(fake_clock) -> RateLimiter:
    """In-memory limiter that never runs the global sweep."""
    return RateLimiter(InMemorySlidingWindow(rng=lambda: 1.0), clock=fake_clock)


@pytest.fixture
def redis_client():
    return FakeAsyncRedis(server=FakeServer())


@pytest.fixture
def redis_limiter(redis_client, fake_clock) -> RateLimiter:
    return RateLimiter(RedisSlidingWindow(redis_client), clock=fake_clock)


async def run_requests(limiter: RateLimiter, count: int) -> list[RateLimitResult]:
    return [await limiter.check_rate_limit("ip:1.2.3.4", TIER) for _ in range(count)]


@pytest.mark.asyncio
async def test_denies_request_over_limit(memory_limiter, fake_clock):
    results = await run_requests(memory_limiter, 4)

    assert [r.success for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert all(r.limit == 3 for r in results)
    now_ms = int(fake_clock() * 1000)
    assert results[-1].reset == now_ms + 60_000
    assert results[-1].retry_after == 60
    assert results[0].retry_after is None


@pytest.mark.asyncio
async def test_window_expiry_readmits(memory_limiter, fake_clock):
    await run_requests(memory_limiter, 4)

    fake_clock.advance(61)
    result = await memory_limiter.check_rate_limit("ip:1.2.3.4", TIER)

    assert result.success
    assert result.remaining == 2


@pytest.mark.asyncio
async def test_window_slides(memory_limiter, fake_clock):
    await memory_limiter.check_rate_limit("ip:1.2.3.4", TIER)
    fake_clock.advance(30)
    await run_requests(memory_limiter, 2)

    fake_clock.advance(31)
    result = await memory_limiter.check_rate_limit("ip:1.2.3.4", TIER)

    # the first request left the window, the two at +30s did not
    assert result.success
    assert result.remaining == 0


@pytest.mark.asyncio
async def test_identifiers_and_tiers_are_isolated(memory_limiter):
    await run_requests(memory_limiter, 3)

    other_ip = await memory_limiter.check_rate_limit("ip:5.6.7.8", TIER)
    other_tier = await memory_limiter.check_rate_limit(
        "ip:1.2.3.4", RateLimitTier(max=3, window_seconds=30)
    )

    assert other_ip.success
    assert other_tier.success


@pytest.mark.asyncio
async def test_sweep_drops_idle_keys(fake_clock):
    backend = InMemorySlidingWindow(rng=lambda: 0.0)
    limiter = RateLimiter(backend, clock=fake_clock)
    await limiter.check_rate_limit("ip:idle", TIER)

    fake_clock.advance(61)
    await limiter.check_rate_limit("ip:active", TIER)

    assert list(backend.store) == [rate_limit_key("ip:active", TIER)]


@pytest.mark.asyncio
async def test_idle_keys_kept_without_sweep(memory_limiter, fake_clock):
    await memory_limiter.check_rate_limit("ip:idle", TIER)

    fake_clock.advance(61)
    await memory_limiter.check_rate_limit("ip:active", TIER)

    assert len(memory_limiter.backend.store) == 2


@pytest.mark.asyncio
async def test_redis_backend_matches_memory(memory_limiter, redis_limiter, fake_clock):
    sequence = []
    for advance in (0, 0, 10, 0, 0, 55, 0, 70):
        fake_clock.advance(advance)
        memory = await memory_limiter.check_rate_limit("user:42", TIER)
        redis = await redis_limiter.check_rate_limit("user:42", TIER)
        sequence.append((memory, redis))

    assert [m for m, _ in sequence] == [r for _, r in sequence]
    assert [m.success for m, _ in sequence] == [
        True,
        True,
        True,
        False,
        False,
        # denied requests stay in the window
        False,
        False,
        True,
    ]


@pytest.mark.asyncio
async def test_redis_key_expires_after_two_windows(redis_limiter, redis_client):
    await redis_limiter.check_rate_limit("user:42", TIER)

    key = rate_limit_key("user:42", TIER)
    assert await redis_client.zcard(key) == 1
    assert await redis_client.ttl(key) == 120


@pytest.mark.asyncio
async def test_backend_failure_fails_open(fake_clock):
    backend = Mock()
    backend.hit = AsyncMock(side_effect=ConnectionError("redis down"))
    limiter = RateLimiter(backend, clock=fake_clock)

    result = await limiter.check_rate_limit("ip:1.2.3.4", TIER)

    assert result == RateLimitResult(
        success=True,
        limit=3,
        remaining=2,
        reset=int(fake_clock() * 1000) + 60_000,
    )


@pytest.mark.asyncio
async def test_empty_transaction_fails_open(redis_limiter):
    pipe = AsyncMock()
    pipe.__aenter__.return_value = pipe
    pipe.zremrangebyscore = Mock()
    pipe.zcard = Mock()
    pipe.zadd = Mock()
    pipe.expire = Mock()
    pipe.execute.return_value = []

    with patch.object(redis_limiter.backend.client, "pipeline", return_value=pipe):
        result = await redis_limiter.check_rate_limit("ip:1.2.3.4", TIER)

    assert result.success
    assert result.remaining == 2


@pytest.mark.asyncio
async def test_close_releases_backend():
    backend = Mock()
    backend.close = AsyncMock()

    await RateLimiter(backend).close()

    backend.close.assert_awaited_once()


@pytest.mark.parametrize(
    ("path", "authenticated", "tier"),
    [
        ("/api/chat", False, "UNAUTH"),
        ("/api/assess", False, "UNAUTH"),
        ("/api/chat", True, "CONVO"),
        ("/api/conversation/abc", True, "CONVO"),
        ("/api/messages", True, "CONVO"),
        ("/api/assess", True, "AUTH"),
    ],
)
def test_get_rate_limit_tier(path, authenticated, tier):
    assert get_rate_limit_tier(path, authenticated=authenticated) == RATE_LIMITS[tier]


def test_tier_allowances():
    assert RATE_LIMITS["UNAUTH"] == RateLimitTier(max=5, window_seconds=60)
    assert RATE_LIMITS["AUTH"] == RateLimitTier(max=60, window_seconds=60)
    assert RATE_LIMITS["CONVO"] == RateLimitTier(max=20, window_seconds=60)


@pytest.mark.parametrize(
    ("headers", "identifier"),
    [
        ({"X-Forwarded-For": "10.0.0.1, 10.0.0.2"}, "ip:10.0.0.1"),
        ({"x-forwarded-for": "10.0.0.1", "x-real-ip": "10.0.0.9"}, "ip:10.0.0.1"),
        ({"X-Real-IP": "10.0.0.9"}, "ip:10.0.0.9"),
        ({}, "ip:unknown"),
    ],
)
def test_get_client_identifier(headers, identifier):
    assert get_client_identifier(headers) == identifier


def test_get_user_identifier_prefers_user_id():
    headers = {"X-API-Key": "secret", "X-Real-IP": "10.0.0.9"}

    assert get_user_identifier(headers, user_id="42") == "user:42"


def test_get_user_identifier_hashes_api_key():
    identifier = get_user_identifier({"X-API-Key": "secret"})

    digest = hashlib.sha256(b"secret").hexdigest()[:16]
    assert identifier == f"key:{digest}"
    assert "secret" not in identifier


def test_get_user_identifier_falls_back_to_address():
    assert get_user_identifier({"X-Real-IP": "10.0.0.9"}) == "ip:10.0.0.9"


def test_headers_for_admitted_request():
    result = RateLimitResult(success=True, limit=20, remaining=19, reset=1_000)

    assert create_rate_limit_headers(result) == {
        "X-RateLimit-Limit": "20",
        "X-RateLimit-Remaining": "19",
        "X-RateLimit-Reset": "1000",
    }


def test_headers_for_denied_request():
    result = RateLimitResult(
        success=False, limit=20, remaining=0, reset=1_000, retry_after=42
    )

    headers = create_rate_limit_headers(result)

    assert headers["X-RateLimit-Error"] == "Rate limit exceeded"
    assert headers["Retry-After"] == "42"


def test_create_memory_limiter():
    limiter = create_rate_limiter("memory")

    assert isinstance(limiter.backend, InMemorySlidingWindow)


def test_create_limiter_from_config():
    with patch.object(config, "RATE_LIMIT_BACKEND", "memory"):
        limiter = create_rate_limiter()

    assert isinstance(limiter.backend, InMemorySlidingWindow)


def test_create_redis_limiter():
    with patch.object(RedisSlidingWindow, "from_url") as from_url:
        limiter = create_rate_limiter("redis", "redis://localhost:6379/0")

    from_url.assert_called_once_with("redis://localhost:6379/0")
    assert limiter.backend is from_url.return_value


def test_create_redis_limiter_requires_url():
    with (
        patch.object(config, "REDIS_URL", None),
        pytest.raises(ConfigurationError, match="REDIS_URL is required"),
    ):
        create_rate_limiter("redis")


def test_create_limiter_rejects_unknown_backend():
    with pytest.raises(ConfigurationError, match="Unsupported rate limit backend"):
        create_rate_limiter("memcached")
