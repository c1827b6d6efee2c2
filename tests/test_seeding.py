from __future__ import annotations

import pytest

from dexmirror.catalog import EntityFetcher, ReferenceSeeder
from dexmirror.database import Stat, Type

BASE = "https://pokeapi.test/api/v2"
WEEK = 7 * 24 * 60 * 60


def _prime_references(fake_upstream):
    fake_upstream.resources["type"] = [
        {"name": "normal", "url": f"{BASE}/type/1/"},
        {"name": "fire", "url": f"{BASE}/type/10/"},
    ]
    fake_upstream.resources["stat"] = [{"name": "hp", "url": f"{BASE}/stat/1/"}]
    fake_upstream.urls[f"{BASE}/type/1/"] = {"id": 1, "name": "normal", "generation": {"name": "generation-i"}}
    fake_upstream.urls[f"{BASE}/type/10/"] = {"id": 10, "name": "fire", "generation": {"name": "generation-i"}}
    fake_upstream.urls[f"{BASE}/stat/1/"] = {"id": 1, "name": "hp", "game_index": 1, "is_battle_only": False}


def _seeder(fake_upstream, session_factory, clock):
    return ReferenceSeeder(
        fake_upstream,
        session_factory=session_factory,
        types_ttl_seconds=WEEK,
        stats_ttl_seconds=WEEK,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_seed_types_and_stats(fake_upstream, session_factory, clock):
    _prime_references(fake_upstream)
    seeder = _seeder(fake_upstream, session_factory, clock)

    assert await seeder.seed_types() == 2
    assert await seeder.seed_stats() == 1

    db = session_factory()
    try:
        fire = db.get(Type, 10)
        assert (fire.name, fire.generation) == ("fire", 1)
        assert fire.last_fetched is not None
        assert db.get(Stat, 1).game_index == 1
    finally:
        db.close()


@pytest.mark.asyncio
async def test_fresh_references_are_skipped_until_forced(fake_upstream, session_factory, clock):
    _prime_references(fake_upstream)
    seeder = _seeder(fake_upstream, session_factory, clock)
    await seeder.seed_types()
    fake_upstream.url_calls.clear()

    clock.advance(days=1)
    assert await seeder.seed_types() == 0
    assert fake_upstream.url_calls == []

    assert await seeder.seed_types(force=True) == 2


@pytest.mark.asyncio
async def test_seed_initial_pokemon_collects_failures(fake_upstream, session_factory, clock, make_pokemon_payload):
    _prime_references(fake_upstream)
    fake_upstream.add(make_pokemon_payload(1))
    fake_upstream.fail(2, status_code=500)
    fake_upstream.add(make_pokemon_payload(3))
    seeder = _seeder(fake_upstream, session_factory, clock)
    fetcher = EntityFetcher(fake_upstream, session_factory=session_factory, clock=clock)

    report = await seeder.seed_initial_pokemon(fetcher, 3, batch_size=2, pause_seconds=0)

    assert (report.types, report.stats, report.pokemon) == (2, 1, 2)
    assert report.failed_pokemon == [2]
    assert fake_upstream.calls == [1, 2, 3]
