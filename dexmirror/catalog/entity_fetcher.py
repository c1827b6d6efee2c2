"""
dexmirror - Freshness-aware entity fetcher.

Cache-aside population of one Pokemon (plus its types, abilities and stats)
from the upstream catalog. A stored row younger than the detail TTL is served
as-is; anything else is refreshed from upstream, written atomically and then
re-read, so callers always get the canonical stored shape.

Upstream failures are raised, never papered over with stale data.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from dexmirror import config
from dexmirror.core.errors import UpstreamUnavailable, ValidationError
from dexmirror.core.utils import is_data_stale, utcnow, validate_pokemon_id
from dexmirror.data_pipeline.fetcher import PokeApiClient
from dexmirror.data_pipeline.normalizer import normalize_pokemon
from dexmirror.data_pipeline.storage import replace_pokemon
from dexmirror.database import SessionLocal, get_pokemon
from dexmirror.domain.models import PokemonDetail
from dexmirror.metrics import record_cache_access

logger = logging.getLogger(__name__)


class EntityFetcher:
    """Return fully populated Pokemon no older than ``ttl_seconds``.

    Concurrent refreshes of the same id share one in-flight upstream call:
    the first caller starts it, everyone else awaits the same task.
    """

    def __init__(
        self,
        upstream: PokeApiClient,
        session_factory: sessionmaker = SessionLocal,
        ttl_seconds: float = config.CACHE_TTL_DETAIL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._upstream = upstream
        self._session_factory = session_factory
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._inflight: Dict[int, asyncio.Task] = {}

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch(self, pokemon_id, force: bool = False) -> PokemonDetail:
        """Return Pokemon ``pokemon_id``, refreshing it from upstream if needed.

        Parameters
        ----------
        pokemon_id:
            Upstream id (1..10000).
        force:
            Skip the freshness check and always refresh.

        Raises
        ------
        ValidationError
            ``pokemon_id`` is not a valid catalog id.
        UpstreamUnavailable
            The refresh failed; no stale copy is returned.
        """
        valid_id = validate_pokemon_id(pokemon_id)
        if valid_id is None:
            raise ValidationError(f"Invalid Pokemon ID: {pokemon_id!r}")

        if not force:
            cached = await asyncio.to_thread(self.load, valid_id)
            if cached is not None and not is_data_stale(cached.last_fetched, self._ttl_seconds, self._clock()):
                record_cache_access(True)
                return cached

        record_cache_access(False)
        return await self._refresh(valid_id)

    def load(self, pokemon_id: int) -> Optional[PokemonDetail]:
        """Read the stored shape (blocking; call from a worker thread)."""
        db = self._session_factory()
        try:
            row = get_pokemon(db, pokemon_id)
            if row is None or row.last_fetched is None:
                return None
            return PokemonDetail.model_validate(row)
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _refresh(self, pokemon_id: int) -> PokemonDetail:
        task = self._inflight.get(pokemon_id)
        if task is None:
            task = asyncio.ensure_future(self._populate(pokemon_id))
            self._inflight[pokemon_id] = task
            task.add_done_callback(lambda t, key=pokemon_id: self._forget(key, t))
        else:
            logger.debug("Joining in-flight refresh of pokemon %s", pokemon_id)
        # A cancelled caller must not cancel the refresh other callers await.
        return await asyncio.shield(task)

    def _forget(self, pokemon_id: int, task: asyncio.Task) -> None:
        if self._inflight.get(pokemon_id) is task:
            del self._inflight[pokemon_id]
        if not task.cancelled():
            # Mark retrieved; failures were already logged in _populate.
            task.exception()

    async def _populate(self, pokemon_id: int) -> PokemonDetail:
        try:
            payload = await self._upstream.fetch_pokemon(pokemon_id)
            record = normalize_pokemon(payload)
        except UpstreamUnavailable as exc:
            logger.error("Failed to fetch pokemon %s: %s", pokemon_id, exc)
            raise

        fetched_at = self._clock()
        try:
            await asyncio.to_thread(self._store, record, fetched_at)
        except SQLAlchemyError:
            logger.exception("Failed to store pokemon %s", pokemon_id)
            raise

        stored = await asyncio.to_thread(self.load, record.id)
        if stored is None:
            raise UpstreamUnavailable(message=f"Pokemon {pokemon_id} vanished after refresh")
        logger.info("Refreshed pokemon %s (%s)", stored.id, stored.name)
        return stored

    def _store(self, record, fetched_at: datetime) -> None:
        db = self._session_factory()
        try:
            replace_pokemon(db, record, fetched_at)
        finally:
            db.close()
