"""
Lightweight runtime metrics for health/observability.

Uses in-process counters so it works without extra dependencies.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Deque, Dict


class _RuntimeMetrics:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cache_hits = 0
        self._cache_misses = 0
        self._backfill_failures = 0
        self._rate_limit_rejections: Dict[str, int] = {}
        self._upstream_error_timestamps: Deque[float] = deque()

    def record_cache_access(self, hit: bool) -> None:
        with self._lock:
            if hit:
                self._cache_hits += 1
            else:
                self._cache_misses += 1

    def record_backfill_failures(self, amount: int = 1) -> None:
        with self._lock:
            self._backfill_failures += max(0, int(amount))

    def record_rate_limit_rejection(self, policy: str) -> None:
        with self._lock:
            self._rate_limit_rejections[policy] = self._rate_limit_rejections.get(policy, 0) + 1

    def record_upstream_error(self, ts: float | None = None) -> None:
        now = ts if ts is not None else time.time()
        with self._lock:
            self._upstream_error_timestamps.append(now)
            self._prune_locked(now)

    def snapshot(self) -> Dict[str, object]:
        now = time.time()
        with self._lock:
            self._prune_locked(now)
            total = self._cache_hits + self._cache_misses
            cache_hit_rate = (self._cache_hits / total) if total > 0 else 0.0
            return {
                "cache_hit_rate": round(cache_hit_rate, 4),
                "backfill_failures": self._backfill_failures,
                "upstream_errors_last_hour": len(self._upstream_error_timestamps),
                "rate_limit_rejections": dict(self._rate_limit_rejections),
            }

    def reset_for_tests(self) -> None:
        with self._lock:
            self._cache_hits = 0
            self._cache_misses = 0
            self._backfill_failures = 0
            self._rate_limit_rejections.clear()
            self._upstream_error_timestamps.clear()

    def _prune_locked(self, now: float) -> None:
        cutoff = now - 3600.0
        while self._upstream_error_timestamps and self._upstream_error_timestamps[0] < cutoff:
            self._upstream_error_timestamps.popleft()


_METRICS = _RuntimeMetrics()


def record_cache_access(hit: bool) -> None:
    _METRICS.record_cache_access(hit)


def record_backfill_failures(amount: int = 1) -> None:
    _METRICS.record_backfill_failures(amount)


def record_rate_limit_rejection(policy: str) -> None:
    _METRICS.record_rate_limit_rejection(policy)


def record_upstream_error(ts: float | None = None) -> None:
    _METRICS.record_upstream_error(ts)


def metrics_snapshot() -> Dict[str, object]:
    return _METRICS.snapshot()


def reset_metrics_for_tests() -> None:
    _METRICS.reset_for_tests()
