"""Per-client fixed-window upload limiter.

State lives in process memory; every worker process keeps its own counters.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict

from .config import RATE_LIMIT_COUNT, RATE_LIMIT_WINDOW_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class _Bucket:
    count: int
    expires: float


class FixedWindowRateLimiter:
    """Allow at most ``max_calls`` per key in each ``window_seconds`` window.

    The window starts with a key's first request and is replaced once it has
    expired.  Rejected requests are not queued and do not extend the window.
    """

    def __init__(
        self,
        max_calls: int = RATE_LIMIT_COUNT,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: Dict[str, _Bucket] = {}
        self._rejected = 0
        self.lock = Lock()

    def allow(self, key: str) -> bool:
        with self.lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None or bucket.expires <= now:
                if len(self._buckets) > 1024:
                    self._prune(now)
                self._buckets[key] = _Bucket(count=1, expires=now + self.window_seconds)
                return True
            if bucket.count >= self.max_calls:
                self._rejected += 1
                logger.warning("Rate limit reached for %s (%d/%d)", key, bucket.count, self.max_calls)
                return False
            bucket.count += 1
            return True

    def _prune(self, now: float) -> None:
        expired = [key for key, bucket in self._buckets.items() if bucket.expires <= now]
        for key in expired:
            del self._buckets[key]

    def reset(self) -> None:
        with self.lock:
            self._buckets.clear()
            self._rejected = 0

    def get_stats(self) -> Dict:
        with self.lock:
            now = self._clock()
            active = sum(1 for bucket in self._buckets.values() if bucket.expires > now)
            return {
                "max_calls": self.max_calls,
                "window_seconds": self.window_seconds,
                "active_clients": active,
                "rejected": self._rejected,
            }
