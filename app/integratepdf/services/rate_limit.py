"""
Fixed-window rate limiting.

Counters live behind a CounterStore so every process of a deployment can
share them through Redis; the in-memory store is for a single process and
tests.
"""

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import redis
from fastapi import Request, Response

from ..config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    """Outcome of one rate limit check. `reset_time` is epoch seconds."""

    allowed: bool
    limit: int
    remaining: int
    reset_time: float
    retry_after: int | None = None

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_time)),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimitExceeded(Exception):
    """Raised by the upload dependency when a client is over its limit."""

    def __init__(self, result: RateLimitResult):
        super().__init__(f"Rate limit exceeded. Try again in {result.retry_after} seconds.")
        self.result = result


class CounterStore(ABC):
    """Atomic windowed counters."""

    @abstractmethod
    def increment(self, key: str, window_seconds: int) -> tuple[int, float]:
        """Increment key and return (count, window reset time in epoch seconds)."""


class InMemoryCounterStore(CounterStore):
    """Process-local counters guarded by a lock."""

    def __init__(self):
        self._entries: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def increment(self, key: str, window_seconds: int) -> tuple[int, float]:
        now = time.time()
        with self._lock:
            count, reset_time = self._entries.get(key, (0, 0.0))
            if now > reset_time:
                count, reset_time = 0, now + window_seconds
            count += 1
            self._entries[key] = (count, reset_time)
            if len(self._entries) > 10_000:
                self._entries = {k: v for k, v in self._entries.items() if v[1] >= now}
            return count, reset_time


class RedisCounterStore(CounterStore):
    """Counters shared across processes through Redis."""

    def __init__(self, redis_url: str, client: redis.Redis | None = None):
        self._client = client or redis.from_url(redis_url, decode_responses=True)

    def increment(self, key: str, window_seconds: int) -> tuple[int, float]:
        window_ms = window_seconds * 1000
        pipe = self._client.pipeline()
        pipe.set(key, 0, nx=True, px=window_ms)
        pipe.incr(key)
        pipe.pttl(key)
        _, count, ttl_ms = pipe.execute()
        if ttl_ms is None or ttl_ms < 0:
            ttl_ms = window_ms
        return int(count), time.time() + ttl_ms / 1000


class RateLimiter:
    """Allows `max_requests` per `window_seconds` per key."""

    def __init__(self, store: CounterStore, max_requests: int, window_seconds: int, prefix: str):
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prefix = prefix

    def check_rate_limit(self, key: str) -> RateLimitResult:
        count, reset_time = self.store.increment(f"{self.prefix}:{key}", self.window_seconds)
        if count > self.max_requests:
            retry_after = max(1, math.ceil(reset_time - time.time()))
            return RateLimitResult(
                allowed=False,
                limit=self.max_requests,
                remaining=0,
                reset_time=reset_time,
                retry_after=retry_after,
            )
        return RateLimitResult(
            allowed=True,
            limit=self.max_requests,
            remaining=self.max_requests - count,
            reset_time=reset_time,
        )


def client_key(request: Request) -> str:
    """Client IP, honouring the usual proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    ip = (
        request.headers.get("cf-connecting-ip")
        or request.headers.get("x-real-ip")
        or (forwarded.split(",")[0].strip() if forwarded else None)
        or (request.client.host if request.client else None)
        or "unknown"
    )
    return ip


# Singleton instance for convenience
_upload_rate_limiter: RateLimiter | None = None


def get_upload_rate_limiter() -> RateLimiter:
    """Get or create the upload rate limiter configured in settings."""
    global _upload_rate_limiter
    if _upload_rate_limiter is None:
        settings = get_settings()
        if settings.rate_limit_backend == "redis":
            store: CounterStore = RedisCounterStore(settings.redis_url)
        else:
            store = InMemoryCounterStore()
        _upload_rate_limiter = RateLimiter(
            store,
            max_requests=settings.upload_rate_limit,
            window_seconds=settings.upload_rate_window_seconds,
            prefix="rate_limit:upload",
        )
    return _upload_rate_limiter


def upload_rate_limit(request: Request, response: Response) -> RateLimitResult:
    """FastAPI dependency throttling uploads per client IP."""
    result = get_upload_rate_limiter().check_rate_limit(client_key(request))
    if not result.allowed:
        logger.warning("Upload rate limit exceeded for %s", client_key(request))
        raise RateLimitExceeded(result)
    response.headers.update(result.headers())
    return result
