"""
Per-route rate-limit policies driven by the shared counter store.

Each route category has its own fixed-window policy. ``RateLimitEnforcer``
turns one counter increment into an admission decision carrying the standard
``RateLimit-*`` headers and, when rejected, the structured 429 body.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional

from dexmirror import config
from dexmirror.core.errors import ValidationError
from dexmirror.core.utils import humanize_seconds, iso_timestamp
from dexmirror.counter_store import CounterStore
from dexmirror.metrics import record_rate_limit_rejection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    window_seconds: int
    max_hits: int
    key_prefix: str
    label: str

    @property
    def window_text(self) -> str:
        return humanize_seconds(self.window_seconds)

    @property
    def header_value(self) -> str:
        return f"{self.max_hits};w={self.window_seconds}"

    def counter_key(self, client_id: str) -> str:
        return f"{self.key_prefix}{client_id}"


def build_policies() -> Dict[str, RateLimitPolicy]:
    """Policy table from ``dexmirror.config``."""
    policies = [
        RateLimitPolicy(
            name="general",
            window_seconds=config.RATE_LIMIT_GENERAL_WINDOW_SECONDS,
            max_hits=config.RATE_LIMIT_GENERAL_MAX,
            key_prefix="general:",
            label="general API",
        ),
        RateLimitPolicy(
            name="search",
            window_seconds=config.RATE_LIMIT_SEARCH_WINDOW_SECONDS,
            max_hits=config.RATE_LIMIT_SEARCH_MAX,
            key_prefix="search:",
            label="search",
        ),
        RateLimitPolicy(
            name="suggestions",
            window_seconds=config.RATE_LIMIT_SUGGESTIONS_WINDOW_SECONDS,
            max_hits=config.RATE_LIMIT_SUGGESTIONS_MAX,
            key_prefix="suggestions:",
            label="suggestion",
        ),
        RateLimitPolicy(
            name="seed",
            window_seconds=config.RATE_LIMIT_SEED_WINDOW_SECONDS,
            max_hits=config.RATE_LIMIT_SEED_MAX,
            key_prefix="seed:",
            label="seed",
        ),
    ]
    return {p.name: p for p in policies}


@dataclass(frozen=True)
class RateLimitDecision:
    policy: RateLimitPolicy
    client_id: str
    allowed: bool
    total_hits: int
    remaining: int
    reset_seconds: int
    decided_at: float

    @property
    def limit(self) -> int:
        return self.policy.max_hits

    @property
    def reset_at(self) -> datetime:
        return datetime.fromtimestamp(self.decided_at + self.reset_seconds, tz=timezone.utc)

    @property
    def message(self) -> str:
        return (
            f"Too many {self.policy.label} requests from this IP address. "
            "Please try again later."
        )

    def headers(self) -> Dict[str, str]:
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_seconds),
            "RateLimit-Policy": self.policy.header_value,
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_seconds)
        return headers

    def to_payload(self) -> dict:
        """429 body handed back to the client."""
        return {
            "error": "Rate limit exceeded",
            "message": self.message,
            "details": {
                "limit": self.limit,
                "remaining": self.remaining,
                "resetTime": iso_timestamp(self.reset_at),
                "retryAfter": self.policy.window_text,
                "requestsAllowed": f"{self.limit} requests per {self.policy.window_text}",
            },
            "statusCode": 429,
            "timestamp": iso_timestamp(datetime.fromtimestamp(self.decided_at, tz=timezone.utc)),
        }


class RateLimitEnforcer:
    """Admission decisions for every policy, backed by one counter store.

    Construct once at startup; the store is shared by all policies and
    namespaced by each policy's key prefix.
    """

    def __init__(
        self,
        store: CounterStore,
        policies: Optional[Mapping[str, RateLimitPolicy]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._policies: Dict[str, RateLimitPolicy] = dict(policies or build_policies())
        self._clock = clock

    @property
    def store(self) -> CounterStore:
        return self._store

    @property
    def policies(self) -> Dict[str, RateLimitPolicy]:
        return dict(self._policies)

    def policy(self, name: str) -> RateLimitPolicy:
        try:
            return self._policies[name]
        except KeyError:
            raise ValidationError(f"Unknown rate limit policy: {name}") from None

    async def hit(self, policy_name: str, client_id: str) -> RateLimitDecision:
        """Count one request for ``client_id`` and decide whether to admit it."""
        policy = self.policy(policy_name)
        counter = await self._store.increment(policy.counter_key(client_id), policy.window_seconds)

        allowed = counter.total_hits <= policy.max_hits
        decision = RateLimitDecision(
            policy=policy,
            client_id=client_id,
            allowed=allowed,
            total_hits=counter.total_hits,
            remaining=max(0, policy.max_hits - counter.total_hits),
            reset_seconds=max(0, int(math.ceil(counter.ttl_remaining))),
            decided_at=self._clock(),
        )
        if not allowed:
            record_rate_limit_rejection(policy.name)
        return decision

    async def reset(self, policy_name: str, client_id: str) -> None:
        """Administrative reset: the client starts a fresh window."""
        policy = self.policy(policy_name)
        await self._store.reset(policy.counter_key(client_id))
        logger.info("Rate limit counter reset: policy=%s client=%s", policy.name, client_id)
