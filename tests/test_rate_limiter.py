from __future__ import annotations

import pytest

from dexmirror import rate_limiter
from dexmirror.core.errors import ValidationError
from dexmirror.counter_store import CounterHit, MemoryCounterStore
from dexmirror.metrics import metrics_snapshot
from dexmirror.rate_limiter import RateLimitEnforcer, RateLimitPolicy, build_policies

NOW = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _enforcer(clock=None, **policy_overrides):
    clock = clock or FakeClock()
    policies = build_policies()
    for name, (window, max_hits) in policy_overrides.items():
        base = policies[name]
        policies[name] = RateLimitPolicy(name, window, max_hits, base.key_prefix, base.label)
    return RateLimitEnforcer(MemoryCounterStore(clock=clock), policies, clock=clock), clock


def test_default_policy_table():
    policies = build_policies()
    assert set(policies) == {"general", "search", "suggestions", "seed"}
    assert (policies["search"].window_seconds, policies["search"].max_hits) == (300, 30)
    assert (policies["suggestions"].window_seconds, policies["suggestions"].max_hits) == (300, 60)
    assert (policies["seed"].window_seconds, policies["seed"].max_hits) == (3600, 3)
    assert policies["general"].window_seconds == 600
    assert policies["seed"].header_value == "3;w=3600"


@pytest.mark.asyncio
async def test_seed_policy_admits_three_then_rejects():
    enforcer, _ = _enforcer()

    decisions = [await enforcer.hit("seed", "10.0.0.1") for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions] == [2, 1, 0, 0]
    assert decisions[3].total_hits == 4
    assert metrics_snapshot()["rate_limit_rejections"] == {"seed": 1}


@pytest.mark.asyncio
async def test_headers_on_admitted_and_rejected_decisions():
    enforcer, _ = _enforcer()
    admitted = await enforcer.hit("search", "c")
    assert admitted.headers() == {
        "RateLimit-Limit": "30",
        "RateLimit-Remaining": "29",
        "RateLimit-Reset": "300",
        "RateLimit-Policy": "30;w=300",
    }

    for _ in range(30):
        rejected = await enforcer.hit("search", "c")
    assert rejected.allowed is False
    assert rejected.headers()["Retry-After"] == "300"
    assert rejected.headers()["RateLimit-Remaining"] == "0"


@pytest.mark.asyncio
async def test_rejection_payload_shape():
    enforcer, _ = _enforcer(seed=(3600, 1))
    await enforcer.hit("seed", "c")
    decision = await enforcer.hit("seed", "c")

    payload = decision.to_payload()
    assert payload["error"] == "Rate limit exceeded"
    assert payload["message"] == "Too many seed requests from this IP address. Please try again later."
    assert payload["statusCode"] == 429
    assert payload["details"]["limit"] == 1
    assert payload["details"]["remaining"] == 0
    assert payload["details"]["retryAfter"] == "1 hour"
    assert payload["details"]["requestsAllowed"] == "1 requests per 1 hour"
    assert payload["details"]["resetTime"] == "2023-11-14T23:13:20.000Z"
    assert payload["timestamp"] == "2023-11-14T22:13:20.000Z"


@pytest.mark.asyncio
async def test_general_message_uses_policy_label():
    enforcer, _ = _enforcer(general=(600, 1))
    await enforcer.hit("general", "c")
    decision = await enforcer.hit("general", "c")
    assert "Too many general API requests" in decision.message
    assert decision.to_payload()["details"]["retryAfter"] == "10 minutes"


@pytest.mark.asyncio
async def test_window_expiry_admits_again():
    clock = FakeClock()
    enforcer, _ = _enforcer(clock=clock, seed=(3600, 3))
    for _ in range(4):
        last = await enforcer.hit("seed", "c")
    assert last.allowed is False

    clock.now += 3600
    fresh = await enforcer.hit("seed", "c")
    assert fresh.allowed is True
    assert fresh.remaining == 2


@pytest.mark.asyncio
async def test_policies_are_namespaced_per_client_and_policy():
    enforcer, _ = _enforcer(seed=(3600, 1))
    await enforcer.hit("seed", "a")
    assert (await enforcer.hit("seed", "b")).allowed is True
    assert (await enforcer.hit("search", "a")).allowed is True
    assert (await enforcer.hit("seed", "a")).allowed is False


@pytest.mark.asyncio
async def test_reset_clears_client_counter():
    enforcer, _ = _enforcer(seed=(3600, 1))
    await enforcer.hit("seed", "a")
    await enforcer.reset("seed", "a")
    assert (await enforcer.hit("seed", "a")).allowed is True


@pytest.mark.asyncio
async def test_unknown_policy_is_rejected():
    enforcer, _ = _enforcer()
    with pytest.raises(ValidationError):
        await enforcer.hit("bogus", "a")


@pytest.mark.asyncio
async def test_failed_open_store_admits_request():
    class FailOpenStore:
        backend = "redis"

        async def increment(self, key, window_seconds):
            return CounterHit(total_hits=1, ttl_remaining=float(window_seconds))

    enforcer = RateLimitEnforcer(FailOpenStore(), clock=FakeClock())
    decision = await enforcer.hit("seed", "a")
    assert decision.allowed is True
    assert decision.reset_seconds == 3600


def test_policies_read_limits_from_config(monkeypatch):
    monkeypatch.setattr(rate_limiter.config, "RATE_LIMIT_SEARCH_MAX", 5)
    monkeypatch.setattr(rate_limiter.config, "RATE_LIMIT_SEARCH_WINDOW_SECONDS", 60)
    policy = build_policies()["search"]
    assert (policy.max_hits, policy.window_seconds, policy.header_value) == (5, 60, "5;w=60")
