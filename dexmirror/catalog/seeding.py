"""
dexmirror - Bulk seeding of reference data and an initial Pokemon set.

Types and stats are fetched in full (generation, game index …) so the
readiness probe can tell a seeded database from an empty one. Pokemon are
seeded one by one through the entity fetcher, pausing between batches to
stay polite to the upstream catalog.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from dexmirror import config
from dexmirror.catalog.entity_fetcher import EntityFetcher
from dexmirror.core.errors import UpstreamUnavailable
from dexmirror.core.utils import extract_resource_id, is_data_stale, utcnow
from dexmirror.data_pipeline.fetcher import PokeApiClient
from dexmirror.data_pipeline.normalizer import normalize_stat, normalize_type
from dexmirror.data_pipeline.storage import upsert_stat, upsert_type
from dexmirror.database import SessionLocal, Stat, Type

logger = logging.getLogger(__name__)


@dataclass
class SeedReport:
    types: int = 0
    stats: int = 0
    pokemon: int = 0
    failed_pokemon: List[int] = field(default_factory=list)


class ReferenceSeeder:
    def __init__(
        self,
        upstream: PokeApiClient,
        session_factory: sessionmaker = SessionLocal,
        types_ttl_seconds: float = config.CACHE_TTL_TYPES_SECONDS,
        stats_ttl_seconds: float = config.CACHE_TTL_STATS_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._upstream = upstream
        self._session_factory = session_factory
        self._types_ttl_seconds = types_ttl_seconds
        self._stats_ttl_seconds = stats_ttl_seconds
        self._clock = clock

    # ------------------------------------------------------------------
    # Reference tables
    # ------------------------------------------------------------------

    async def seed_types(self, force: bool = False) -> int:
        """Fetch every type whose stored copy is missing or stale."""
        return await self._seed_resource("type", Type, self._types_ttl_seconds, force)

    async def seed_stats(self, force: bool = False) -> int:
        return await self._seed_resource("stat", Stat, self._stats_ttl_seconds, force)

    async def _seed_resource(self, resource: str, model, ttl_seconds: float, force: bool) -> int:
        index = await self._upstream.fetch_resource_index(resource)
        fresh = set() if force else await asyncio.to_thread(self._fresh_ids, model, ttl_seconds)

        stored = 0
        for ref in index:
            ref_id = extract_resource_id(ref.get("url"))
            if ref_id is None:
                logger.warning("Skipping %s with unusable url %r", resource, ref.get("url"))
                continue
            if ref_id in fresh:
                continue
            payload = await self._upstream.fetch_url(ref["url"])
            if resource == "type":
                await asyncio.to_thread(self._write, upsert_type, normalize_type(payload))
            else:
                await asyncio.to_thread(self._write, upsert_stat, normalize_stat(payload))
            stored += 1

        logger.info("Seeded %d %ss (%d already fresh)", stored, resource, len(fresh))
        return stored

    def _fresh_ids(self, model, ttl_seconds: float) -> set:
        now = self._clock()
        db = self._session_factory()
        try:
            rows = db.execute(select(model.id, model.last_fetched)).all()
            return {row_id for row_id, fetched in rows if not is_data_stale(fetched, ttl_seconds, now)}
        finally:
            db.close()

    def _write(self, writer, record) -> None:
        db = self._session_factory()
        try:
            writer(db, record, self._clock())
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Initial Pokemon set
    # ------------------------------------------------------------------

    async def seed_initial_pokemon(
        self,
        fetcher: EntityFetcher,
        count: int,
        batch_size: int = config.SEED_BATCH_SIZE,
        pause_seconds: float = config.SEED_BATCH_PAUSE_SECONDS,
    ) -> SeedReport:
        """Seed types, stats and Pokemon ``1..count``.

        Per-Pokemon failures are logged and skipped; reference seeding
        failures abort the run.
        """
        logger.info("Starting to seed %d pokemon...", count)
        report = SeedReport()
        report.types = await self.seed_types()
        report.stats = await self.seed_stats()

        for pokemon_id in range(1, count + 1):
            try:
                await fetcher.fetch(pokemon_id)
                report.pokemon += 1
            except UpstreamUnavailable as exc:
                logger.error("Failed to seed pokemon %s: %s", pokemon_id, exc)
                report.failed_pokemon.append(pokemon_id)
            except Exception:
                logger.exception("Unexpected error seeding pokemon %s", pokemon_id)
                report.failed_pokemon.append(pokemon_id)

            if batch_size > 0 and pokemon_id % batch_size == 0 and pokemon_id < count:
                await asyncio.sleep(pause_seconds)

        logger.info(
            "Finished seeding %d pokemon (%d failed)", report.pokemon, len(report.failed_pokemon),
        )
        return report
