"""
Pytest configuration and shared fixtures.

Fixtures available to all tests:
  • session_factory      - sessionmaker bound to a fresh SQLite file
  • make_pokemon_payload - upstream-shaped ``/pokemon/{id}`` payload factory
  • fake_upstream        - in-memory stand-in for ``PokeApiClient``
  • clock                - mutable UTC clock for freshness tests
"""

from __future__ import annotations

import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

os.environ.setdefault("APP_ENV", "test")

# Ensure the project root is on the path so all dexmirror imports resolve.
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from dexmirror.core.errors import UpstreamUnavailable  # noqa: E402
from dexmirror.database import init_db, make_engine, make_session_factory  # noqa: E402
from dexmirror.metrics import reset_metrics_for_tests  # noqa: E402

BASE = "https://pokeapi.test/api/v2"

TYPE_IDS = {"normal": 1, "fighting": 2, "flying": 3, "poison": 4, "grass": 12, "fire": 10, "electric": 13}
ABILITY_IDS = {"overgrow": 65, "chlorophyll": 34, "blaze": 66, "static": 9, "lightning-rod": 31}
STAT_NAMES = ["hp", "attack", "defense", "special-attack", "special-defense", "speed"]


def _ref(resource: str, name: str, ref_id: int) -> dict:
    return {"name": name, "url": f"{BASE}/{resource}/{ref_id}/"}


def make_payload(
    pokemon_id: int,
    name: Optional[str] = None,
    types: Optional[List[str]] = None,
    abilities: Optional[List[tuple]] = None,
    base_stats: Optional[List[int]] = None,
) -> dict:
    """Build a ``/pokemon/{id}`` payload shaped like the real upstream one."""
    types = types or ["grass", "poison"]
    abilities = abilities or [("overgrow", False), ("chlorophyll", True)]
    base_stats = base_stats or [45, 49, 49, 65, 65, 45]
    return {
        "id": pokemon_id,
        "name": name or f"pokemon-{pokemon_id}",
        "height": 7,
        "weight": 69,
        "base_experience": 64,
        "order": pokemon_id,
        "sprites": {
            "front_default": f"https://img.test/{pokemon_id}.png",
            "back_default": None,
            "front_shiny": f"https://img.test/shiny/{pokemon_id}.png",
            "back_shiny": None,
        },
        "cries": {"latest": f"https://cries.test/{pokemon_id}.ogg"},
        "types": [
            {"slot": slot, "type": _ref("type", t, TYPE_IDS[t])}
            for slot, t in enumerate(types, start=1)
        ],
        "abilities": [
            {"slot": slot, "is_hidden": hidden, "ability": _ref("ability", a, ABILITY_IDS[a])}
            for slot, (a, hidden) in enumerate(abilities, start=1)
        ],
        "stats": [
            {"base_stat": value, "effort": 1 if idx == 0 else 0, "stat": _ref("stat", STAT_NAMES[idx], idx + 1)}
            for idx, value in enumerate(base_stats)
        ],
    }


class FakeUpstream:
    """Records every call; returns canned payloads or raises configured errors."""

    def __init__(self, delay: float = 0.0) -> None:
        self.payloads: Dict[int, dict] = {}
        self.failures: Dict[int, Exception] = {}
        self.resources: Dict[str, List[dict]] = {}
        self.urls: Dict[str, dict] = {}
        self.calls: List[int] = []
        self.url_calls: List[str] = []
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.closed = False

    def add(self, payload: dict) -> None:
        self.payloads[payload["id"]] = payload

    def fail(self, pokemon_id: int, status_code: Optional[int] = 500) -> None:
        self.failures[pokemon_id] = UpstreamUnavailable(
            message=f"Upstream request failed: {status_code}",
            status_code=status_code,
        )

    async def fetch_pokemon(self, pokemon_id: int) -> dict:
        self.calls.append(pokemon_id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if pokemon_id in self.failures:
                raise self.failures[pokemon_id]
            if pokemon_id not in self.payloads:
                raise UpstreamUnavailable(message="Upstream request failed: 404", status_code=404)
            return self.payloads[pokemon_id]
        finally:
            self.active -= 1

    async def fetch_resource_index(self, resource: str) -> List[dict]:
        return list(self.resources.get(resource, []))

    async def fetch_url(self, url: str) -> dict:
        self.url_calls.append(url)
        return self.urls[url]

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


class MutableClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'dexmirror-test.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def make_pokemon_payload():
    return make_payload


@pytest.fixture
def fake_upstream():
    return FakeUpstream()


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_metrics_for_tests()
    yield
    reset_metrics_for_tests()
