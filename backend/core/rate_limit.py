"""Hourly rate limiting for API keys.

Each key may make ``rate_limit`` requests per UTC clock hour. Counts are
kept in process memory keyed by (api_key_id, hour bucket), so they reset
on restart and are not shared between instances.

Production note: Replace in-memory store with Redis for multi-instance deployments.
"""

import threading
from datetime import datetime
from typing import Optional, Tuple

from core.exceptions import RateLimitExceededError
from core.utils import current_hour_bucket


class HourlyUsageCounter:
    """Thread-safe fixed-window counter, one window per UTC hour."""

    def __init__(self, max_keys: int = 50_000):
        self._lock = threading.Lock()
        # Key: (api_key_id, hour_bucket) -> count
        self._counts: dict[Tuple[str, int], int] = {}
        self._max_keys = max_keys

    def check_and_increment(
        self, api_key_id: str, limit: int, now: Optional[datetime] = None
    ) -> Tuple[int, datetime]:
        """Count one request against the key's current hour.

        Returns:
            (count_after_this_request, reset_time)

        Raises:
            RateLimitExceededError: when the hour's quota is already used up;
                the rejected request is not counted
        """
        bucket, reset_at = current_hour_bucket(now)
        key = (api_key_id, bucket)

        with self._lock:
            current = self._counts.get(key, 0)
            if current >= limit:
                raise RateLimitExceededError(limit, reset_at.isoformat())
            self._counts[key] = current + 1
            self._evict_stale(bucket)
            return current + 1, reset_at

    def usage(self, api_key_id: str, now: Optional[datetime] = None) -> int:
        bucket, _ = current_hour_bucket(now)
        with self._lock:
            return self._counts.get((api_key_id, bucket), 0)

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()

    def _evict_stale(self, bucket: int) -> None:
        """Drop past hours once the memory bound is exceeded."""
        if len(self._counts) > self._max_keys:
            for key in [k for k in self._counts if k[1] < bucket]:
                del self._counts[key]


# Singleton counter
_counter = HourlyUsageCounter()


def get_usage_counter() -> HourlyUsageCounter:
    return _counter
