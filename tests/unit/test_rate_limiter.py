"""Unit tests for the job-start rate limiter."""
import pytest
from unittest.mock import AsyncMock, patch

from pim_ingestion.services.rate_limiter import (
    MIN_WAIT_SECONDS,
    RATE_LIMIT_KEY,
    JobStartRateLimiter,
)


@pytest.fixture
def redis():
    mock_redis = AsyncMock()
    mock_redis.zcard.return_value = 0
    mock_redis.zrange.return_value = []
    return mock_redis


class TestAcquire:
    """Test slot accounting."""

    @pytest.mark.asyncio
    async def test_free_slot_records_start(self, redis):
        limiter = JobStartRateLimiter(redis, max_starts=5, window_seconds=60)

        delay = await limiter.acquire("job-1", now=1000.0)

        assert delay == 0.0
        redis.zremrangebyscore.assert_awaited_once_with(RATE_LIMIT_KEY, 0, 940.0)
        redis.zadd.assert_awaited_once_with(RATE_LIMIT_KEY, {"job-1:1000.0": 1000.0})
        redis.expire.assert_awaited_once_with(RATE_LIMIT_KEY, 61)

    @pytest.mark.asyncio
    async def test_full_window_returns_time_until_oldest_expires(self, redis):
        redis.zcard.return_value = 5
        redis.zrange.return_value = [(b"job-0:970.0", 970.0)]
        limiter = JobStartRateLimiter(redis, max_starts=5, window_seconds=60)

        delay = await limiter.acquire("job-6", now=1000.0)

        assert delay == pytest.approx(30.0)
        redis.zadd.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delay_has_a_floor(self, redis):
        redis.zcard.return_value = 5
        redis.zrange.return_value = [(b"job-0:940.1", 940.1)]
        limiter = JobStartRateLimiter(redis, max_starts=5, window_seconds=60)

        delay = await limiter.acquire("job-6", now=1000.0)

        assert delay == MIN_WAIT_SECONDS


class TestWaitForSlot:
    """Test waiting inside the task."""

    @pytest.mark.asyncio
    async def test_returns_immediately_when_free(self, redis):
        limiter = JobStartRateLimiter(redis, max_starts=5, window_seconds=60)

        with patch("pim_ingestion.services.rate_limiter.asyncio.sleep", new=AsyncMock()) as sleep:
            waited = await limiter.wait_for_slot("job-1")

        assert waited == 0.0
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sleeps_until_slot_frees(self, redis):
        limiter = JobStartRateLimiter(redis, max_starts=1, window_seconds=60)
        limiter.acquire = AsyncMock(side_effect=[12.0, 3.0, 0.0])

        with patch("pim_ingestion.services.rate_limiter.asyncio.sleep", new=AsyncMock()) as sleep:
            waited = await limiter.wait_for_slot("job-2")

        assert waited == 15.0
        assert [call.args[0] for call in sleep.await_args_list] == [12.0, 3.0]
