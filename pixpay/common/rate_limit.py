"""Per-caller limits on PIX transaction-creation attempts.

The limiter is advisory and evaluated before validation; real abuse protection
belongs to the provider and the edge layer. Two backends share one contract:

* `SlidingWindowRateLimiter`: in-process, exact sliding window.
* `RedisRateLimiter`: fixed window keyed per caller, for multi-worker deployments.
"""

import threading
import time
from collections import defaultdict, deque
from typing import Callable, Protocol

import redis

from pixpay.common.config import PixSettings


class RateLimiter(Protocol):
    def try_acquire(self, key: str) -> bool:
        """Record one attempt for `key` and report whether it is allowed."""
        ...

    def retry_after(self, key: str) -> float:
        """Seconds until `key` may attempt again (0 when allowed now)."""
        ...


class SlidingWindowRateLimiter:
    """At most `max_attempts` per key within the trailing `window_seconds`."""

    def __init__(
        self,
        max_attempts: int = 10,
        window_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _prune(self, key: str, now: float) -> deque[float] | None:
        """Drop hits older than the window; forget `key` once it has none left."""

        hits = self._hits.get(key)
        if hits is None:
            return None
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()
        if not hits:
            del self._hits[key]
            return None
        return hits

    def _sweep(self, now: float) -> None:
        # Full pass at most once per window.
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        for key in list(self._hits):
            self._prune(key, now)

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)

    def try_acquire(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            self._sweep(now)
            hits = self._prune(key, now)
            if hits is not None and len(hits) >= self.max_attempts:
                return False
            self._hits[key].append(now)
            return True

    def retry_after(self, key: str) -> float:
        now = self._clock()
        with self._lock:
            hits = self._prune(key, now)
            if hits is None or len(hits) < self.max_attempts:
                return 0.0
            return max(0.0, self.window_seconds - (now - hits[0]))

    def reset(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)


class RedisRateLimiter:
    """Fixed-window counter in Redis (`INCR` + `EXPIRE` on first hit)."""

    def __init__(
        self,
        rdb: redis.Redis,
        max_attempts: int = 10,
        window_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
        prefix: str = "pix:ratelimit",
    ) -> None:
        self.rdb = rdb
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self.prefix = prefix

    def _window(self, now: float) -> int:
        return int(now // self.window_seconds)

    def _key(self, key: str, window: int) -> str:
        return f"{self.prefix}:{key}:{window}"

    def try_acquire(self, key: str) -> bool:
        window_key = self._key(key, self._window(self._clock()))
        count = self.rdb.incr(window_key)
        if count == 1:
            self.rdb.expire(window_key, int(self.window_seconds) + 1)
        return count <= self.max_attempts

    def retry_after(self, key: str) -> float:
        now = self._clock()
        window = self._window(now)
        count = int(self.rdb.get(self._key(key, window)) or 0)
        if count < self.max_attempts:
            return 0.0
        return (window + 1) * self.window_seconds - now


def build_rate_limiter(config: PixSettings) -> RateLimiter:
    """Pick the limiter backend configured by `rate_limit_backend`."""

    backend = config.rate_limit_backend.lower()
    if backend == "memory":
        return SlidingWindowRateLimiter(config.rate_limit_max_attempts, config.rate_limit_window_seconds)
    if backend == "redis":
        rdb = redis.Redis.from_url(config.redis_url, decode_responses=True)
        return RedisRateLimiter(rdb, config.rate_limit_max_attempts, config.rate_limit_window_seconds)
    raise ValueError(f"unknown rate_limit_backend: {config.rate_limit_backend}")
