"""Rolling-window limiter for import job starts.

Job starts are recorded in a Redis sorted set scored by start time. A job
arriving when the window is full waits for the oldest start to leave the
window before it touches its record.
"""
import asyncio
import math
import time
from typing import Optional

import structlog
from arq.connections import ArqRedis

logger = structlog.get_logger(__name__)

RATE_LIMIT_KEY = "import:rate_limit:starts"
MIN_WAIT_SECONDS = 1.0


class JobStartRateLimiter:
    """Allow at most ``max_starts`` job starts per ``window_seconds``.

    Counting is shared by every worker using the same Redis key. The check
    and the insert are separate commands, so concurrent workers may
    overshoot the limit by a start or two.
    """

    def __init__(
        self,
        redis: ArqRedis,
        max_starts: int,
        window_seconds: float,
        key: str = RATE_LIMIT_KEY,
    ):
        self._redis = redis
        self._max_starts = max_starts
        self._window = window_seconds
        self._key = key

    async def acquire(self, job_id: str, now: Optional[float] = None) -> float:
        """Try to record a start for ``job_id``.

        Returns:
            0.0 if the job may start now, otherwise seconds to wait
        """
        now = time.time() if now is None else now
        await self._redis.zremrangebyscore(self._key, 0, now - self._window)

        started = await self._redis.zcard(self._key)
        if started >= self._max_starts:
            oldest = await self._redis.zrange(self._key, 0, 0, withscores=True)
            oldest_start = oldest[0][1] if oldest else now
            delay = max(oldest_start + self._window - now, MIN_WAIT_SECONDS)
            logger.info(
                "import_rate_limited",
                job_id=job_id,
                started_in_window=started,
                max_starts=self._max_starts,
                wait_seconds=round(delay, 2),
            )
            return delay

        await self._redis.zadd(self._key, {f"{job_id}:{now}": now})
        await self._redis.expire(self._key, math.ceil(self._window) + 1)
        return 0.0

    async def wait_for_slot(self, job_id: str) -> float:
        """Block until ``job_id`` may start.

        Returns:
            Total seconds spent waiting
        """
        waited = 0.0
        while True:
            delay = await self.acquire(job_id)
            if delay <= 0:
                return waited
            await asyncio.sleep(delay)
            waited += delay
