"""Cluster-wide limit on how many render jobs may start per time window.

Celery's own ``rate_limit`` is enforced inside each worker process, so N
workers would start N times the configured rate. This limiter keeps one
counter per fixed window in Redis, shared by every worker.
"""

import logging
import math
import time
from functools import lru_cache
from typing import Any, Optional

import redis

from captionburn.config import Settings, get_settings

logger = logging.getLogger(__name__)


class StartLimiter:
    """Fixed-window counter of job starts."""

    def __init__(
        self,
        client: Any,
        max_starts: int,
        window_ms: int,
        namespace: str = "captionburn:starts",
    ):
        if max_starts < 1 or window_ms < 1:
            raise ValueError("max_starts and window_ms must be positive")
        self._client = client
        self.max_starts = max_starts
        self.window_ms = window_ms
        self._namespace = namespace

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "StartLimiter":
        settings = settings or get_settings()
        return cls(
            redis.Redis.from_url(settings.redis_url),
            max_starts=settings.start_limit_max,
            window_ms=settings.start_limit_window_ms,
        )

    def _key(self, window: int) -> str:
        return f"{self._namespace}:{window}"

    def acquire(self, now: Optional[float] = None) -> float:
        """Take a start slot in the current window.

        Returns:
            0.0 when the start may proceed, otherwise the seconds until the
            next window opens
        """
        now_ms = (time.time() if now is None else now) * 1000
        window = int(now_ms // self.window_ms)

        pipe = self._client.pipeline()
        pipe.incr(self._key(window))
        # Keys outlive their window only briefly
        pipe.expire(self._key(window), math.ceil(self.window_ms / 1000) + 1)
        count, _ = pipe.execute()

        if count <= self.max_starts:
            return 0.0
        wait_s = ((window + 1) * self.window_ms - now_ms) / 1000
        logger.debug(f"[QUEUE] Start limit reached ({count}/{self.max_starts}), next window in {wait_s:.3f}s")
        return wait_s


@lru_cache
def get_start_limiter() -> StartLimiter:
    return StartLimiter.from_settings()
