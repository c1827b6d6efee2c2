"""
Rate-limit counter store (Redis preferred, in-memory fallback).

Both backends implement a fixed window: the expiry is set on the first hit
and later hits never extend it.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from dexmirror.core.constants import RATE_LIMIT_KEY_PREFIX
from dexmirror.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CounterHit:
    total_hits: int
    ttl_remaining: float  # seconds until the window resets


class CounterStore:
    backend: str = "none"

    async def increment(self, key: str, window_seconds: int) -> CounterHit:
        raise NotImplementedError

    async def reset(self, key: str) -> None:
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class MemoryCounterStore(CounterStore):
    """In-process counters.

    Not shared between server instances; each process enforces its own
    budget.
    """

    backend = "memory"

    # Expired keys are swept after this many increments.
    SWEEP_EVERY: int = 1000

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._store: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._ops = 0

    async def increment(self, key: str, window_seconds: int) -> CounterHit:
        now = self._clock()
        with self._lock:
            hit = self._store.get(key)
            if hit is None or now >= hit[1]:
                count, expires_at = 0, now + max(1, window_seconds)
            else:
                count, expires_at = hit
            count += 1
            self._store[key] = (count, expires_at)

            self._ops += 1
            if self._ops % self.SWEEP_EVERY == 0:
                self._sweep_locked(now)
            return CounterHit(total_hits=count, ttl_remaining=max(0.0, expires_at - now))

    async def reset(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def _sweep_locked(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._store.items() if now >= expires_at]
        for k in expired:
            del self._store[k]


class RedisCounterStore(CounterStore):
    """Counters shared by every process pointed at the same Redis.

    Operational errors fail open: the hit is reported as the first of a new
    window so requests keep flowing while Redis is down.
    """

    backend = "redis"

    def __init__(self, url: str, prefix: str = RATE_LIMIT_KEY_PREFIX, client=None) -> None:
        self._prefix = prefix
        self._client = client or aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=1,
            socket_timeout=1,
            retry_on_timeout=False,
        )

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def connect(self) -> "RedisCounterStore":
        """Ping once; raises ``StoreUnavailable`` so the caller can fall back to memory."""
        try:
            await self._client.ping()
        except (RedisError, OSError) as exc:
            raise StoreUnavailable(message=f"Redis unreachable: {exc}") from exc
        return self

    async def _incr(self, redis_key: str, window_ms: int) -> CounterHit:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                count, pttl = await pipe.incr(redis_key).pttl(redis_key).execute()
            if pttl is None or int(pttl) < 0:
                # First hit of the window (or an expiry lost to a crash).
                await self._client.pexpire(redis_key, window_ms)
                pttl = window_ms
        except (RedisError, OSError) as exc:
            raise StoreUnavailable(message=str(exc), details={"key": redis_key}) from exc
        return CounterHit(total_hits=int(count), ttl_remaining=int(pttl) / 1000.0)

    async def increment(self, key: str, window_seconds: int) -> CounterHit:
        redis_key = self._key(key)
        try:
            return await self._incr(redis_key, max(1, int(window_seconds)) * 1000)
        except StoreUnavailable as exc:
            logger.warning("Redis increment failed for %s; failing open: %s", redis_key, exc)
            return CounterHit(total_hits=1, ttl_remaining=float(window_seconds))

    async def reset(self, key: str) -> None:
        redis_key = self._key(key)
        try:
            await self._client.delete(redis_key)
        except (RedisError, OSError) as exc:
            logger.error("Redis reset failed for %s: %s", redis_key, exc)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError):
            return False

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as exc:
            logger.debug("Error closing Redis connection: %s", exc)


async def build_counter_store(url: Optional[str]) -> CounterStore:
    """Construct the process-wide counter store.

    Call once at startup and hand the result to whoever enforces limits.
    """
    if not url:
        logger.info("No REDIS_URL configured, using in-memory rate limiting")
        return MemoryCounterStore()

    store = RedisCounterStore(url)
    try:
        await store.connect()
    except StoreUnavailable as exc:
        logger.error("Failed to connect to Redis, using memory fallback: %s", exc)
        await store.close()
        return MemoryCounterStore()

    logger.info("Connected to Redis for rate limiting")
    return store
