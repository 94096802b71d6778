"""
Tests for the sliding-window rate limiter.
"""

import pytest
from unittest.mock import AsyncMock

from limits.aio.storage import MemoryStorage

from auth.exceptions import StoreUnavailableError
from auth.rate_limiting import RateLimiter, RateLimitResult, rate_limit_headers
from auth.usage_tracking import RATE_LIMITS, RateLimitTier


@pytest.mark.asyncio
async def test_allows_requests_up_to_the_limit(rate_limiter):
    limit, _ = RATE_LIMITS[RateLimitTier.FREE]

    for i in range(limit):
        result = await rate_limiter.check("user-1", RateLimitTier.FREE)
        assert result.allowed
        assert result.limit == limit
        assert result.remaining == limit - i - 1
        assert result.retry_after_seconds is None


@pytest.mark.asyncio
async def test_rejects_request_over_the_limit_with_positive_retry(rate_limiter):
    limit, _ = RATE_LIMITS[RateLimitTier.FREE]
    for _ in range(limit):
        await rate_limiter.check("user-1", RateLimitTier.FREE)

    result = await rate_limiter.check("user-1", RateLimitTier.FREE)

    assert not result.allowed
    assert result.remaining == 0
    assert result.retry_after_seconds is not None
    assert result.retry_after_seconds >= 1


@pytest.mark.asyncio
async def test_anonymous_tier_allows_three_per_minute(rate_limiter):
    results = [await rate_limiter.check("ip:10.0.0.1", RateLimitTier.ANONYMOUS) for _ in range(4)]

    assert [r.allowed for r in results] == [True, True, True, False]


@pytest.mark.asyncio
async def test_identifiers_have_independent_windows(rate_limiter):
    for _ in range(3):
        await rate_limiter.check("ip:10.0.0.1", RateLimitTier.ANONYMOUS)

    assert not (await rate_limiter.check("ip:10.0.0.1", RateLimitTier.ANONYMOUS)).allowed
    assert (await rate_limiter.check("ip:10.0.0.2", RateLimitTier.ANONYMOUS)).allowed


@pytest.mark.asyncio
async def test_tiers_have_independent_windows(rate_limiter):
    for _ in range(3):
        await rate_limiter.check("shared-id", RateLimitTier.ANONYMOUS)

    result = await rate_limiter.check("shared-id", RateLimitTier.PRO)
    assert result.allowed
    assert result.limit == RATE_LIMITS[RateLimitTier.PRO][0]


@pytest.mark.asyncio
async def test_rejected_requests_do_not_consume_the_window():
    limiter = RateLimiter(MemoryStorage(), limits={tier: (2, 60) for tier in RateLimitTier})
    await limiter.check("user-1", RateLimitTier.FREE)
    await limiter.check("user-1", RateLimitTier.FREE)

    for _ in range(5):
        assert not (await limiter.check("user-1", RateLimitTier.FREE)).allowed

    item = limiter.item_for(RateLimitTier.FREE)
    _, recorded = await limiter.storage.get_moving_window(item.key_for("user-1"), item.amount, item.get_expiry())
    assert recorded == 2


@pytest.mark.asyncio
async def test_store_failure_fails_closed_by_default(rate_limiter):
    rate_limiter._strategy.hit = AsyncMock(side_effect=ConnectionError("redis down"))

    with pytest.raises(StoreUnavailableError):
        await rate_limiter.check("user-1", RateLimitTier.FREE)


@pytest.mark.asyncio
async def test_store_failure_can_fail_open():
    limiter = RateLimiter(MemoryStorage(), fail_open=True)
    limiter._strategy.hit = AsyncMock(side_effect=ConnectionError("redis down"))

    result = await limiter.check("user-1", RateLimitTier.FREE)

    assert result.allowed
    assert result.limit == RATE_LIMITS[RateLimitTier.FREE][0]


def test_rate_limit_headers_include_retry_after_only_when_rejected():
    allowed = RateLimitResult(allowed=True, limit=5, remaining=4, reset_at_epoch_ms=1_700_000_000_000)
    rejected = RateLimitResult(
        allowed=False, limit=5, remaining=0, reset_at_epoch_ms=1_700_000_000_000, retry_after_seconds=12
    )

    assert rate_limit_headers(allowed) == {
        "X-RateLimit-Limit": "5",
        "X-RateLimit-Remaining": "4",
        "X-RateLimit-Reset": "1700000000000",
    }
    assert rate_limit_headers(rejected)["Retry-After"] == "12"
    assert rate_limit_headers(rejected)["X-RateLimit-Remaining"] == "0"


def test_every_tier_has_a_rate_limit():
    assert set(RATE_LIMITS) == set(RateLimitTier)
    assert RATE_LIMITS[RateLimitTier.ANONYMOUS] == (3, 60)
    assert RATE_LIMITS[RateLimitTier.FREE] == (5, 60)
    assert RATE_LIMITS[RateLimitTier.PRO] == (30, 60)
    assert RATE_LIMITS[RateLimitTier.ENTERPRISE] == (100, 60)
