"""
Rate limiting for API requests.

Sliding-window request budgets per (bucket, client) pair, used to
throttle the article, feed and metadata endpoints.
"""

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional

import structlog

from newsdesk.config import get_settings

logger = structlog.get_logger(__name__)


class RateLimiter:
    """
    Sliding-window rate limiter with per-client tracking.

    Features:
    - Named buckets with their own limits
    - Separate history per client within a bucket
    - Async-safe with locks
    """

    # Default limits per bucket (requests, period_seconds)
    DEFAULT_LIMITS = {
        "articles-feed": (30, 60),
        "metadata": (20, 60),
        "default": (60, 60),
    }

    def __init__(self):
        self._request_times: dict[tuple[str, str], list[datetime]] = defaultdict(list)
        self._locks: dict[tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)
        self._custom_limits: dict[str, tuple[int, int]] = {}

    def set_limit(self, bucket: str, requests: int, period_seconds: int):
        """Set custom rate limit for a bucket."""
        self._custom_limits[bucket] = (requests, period_seconds)

    def _get_limit(self, bucket: str) -> tuple[int, int]:
        if bucket in self._custom_limits:
            return self._custom_limits[bucket]
        return self.DEFAULT_LIMITS.get(bucket, self.DEFAULT_LIMITS["default"])

    def _recent(self, key: tuple[str, str], now: datetime, period_seconds: int) -> list[datetime]:
        cutoff = now - timedelta(seconds=period_seconds)
        recent = [t for t in self._request_times[key] if t > cutoff]
        self._request_times[key] = recent
        return recent

    async def try_acquire(self, bucket: str, client: str) -> bool:
        """
        Record a request if the client still has budget in this bucket.

        Returns:
            True if allowed, False if the limit is reached
        """
        key = (bucket, client)
        max_requests, period_seconds = self._get_limit(bucket)

        async with self._locks[key]:
            now = datetime.now()
            recent = self._recent(key, now, period_seconds)

            if len(recent) < max_requests:
                recent.append(now)
                return True

        logger.warning("Rate limit exceeded", bucket=bucket, client=client)
        return False

    def retry_after(self, bucket: str, client: str) -> int:
        """Seconds until the oldest request in the window expires."""
        key = (bucket, client)
        _, period_seconds = self._get_limit(bucket)
        now = datetime.now()
        recent = self._recent(key, now, period_seconds)
        if not recent:
            return 0
        wait = (min(recent) + timedelta(seconds=period_seconds) - now).total_seconds()
        return max(int(wait) + 1, 1)


# Global rate limiter instance
_global_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get the global rate limiter instance, with limits from settings."""
    global _global_limiter
    if _global_limiter is None:
        limits = get_settings().rate_limit
        _global_limiter = RateLimiter()
        _global_limiter.set_limit("articles-feed", limits.articles_feed_per_minute, 60)
        _global_limiter.set_limit("metadata", limits.metadata_per_minute, 60)
    return _global_limiter
