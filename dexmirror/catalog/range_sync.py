"""
dexmirror - Batch range synchronizer.

Backfills a contiguous id range: anything missing locally or older than the
list-level TTL is refreshed through the entity fetcher, a bounded number at a
time. Individual failures are logged and dropped, so the result may have
gaps.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import sessionmaker

from dexmirror import config
from dexmirror.catalog.entity_fetcher import EntityFetcher
from dexmirror.core.constants import LIST_MAX_LIMIT, POKEMON_ID_MAX
from dexmirror.core.errors import UpstreamUnavailable, ValidationError
from dexmirror.core.utils import is_data_stale, utcnow
from dexmirror.database import SessionLocal, get_pokemon_range
from dexmirror.domain.models import PokemonSummary
from dexmirror.metrics import record_backfill_failures

logger = logging.getLogger(__name__)


@dataclass
class RangeSyncResult:
    offset: int
    limit: int
    entities: List[PokemonSummary] = field(default_factory=list)
    fresh_ids: List[int] = field(default_factory=list)
    stale_ids: List[int] = field(default_factory=list)
    missing_ids: List[int] = field(default_factory=list)
    failed_ids: List[int] = field(default_factory=list)

    @property
    def first_id(self) -> int:
        return self.offset + 1

    @property
    def last_id(self) -> int:
        # Ids past the catalog ceiling are never requested.
        return min(self.offset + self.limit, POKEMON_ID_MAX)


class RangeSynchronizer:
    def __init__(
        self,
        fetcher: EntityFetcher,
        session_factory: sessionmaker = SessionLocal,
        list_ttl_seconds: float = config.CACHE_TTL_LIST_SECONDS,
        max_concurrency: Optional[int] = config.SYNC_MAX_CONCURRENCY,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._fetcher = fetcher
        self._session_factory = session_factory
        self._list_ttl_seconds = list_ttl_seconds
        self._max_concurrency = max_concurrency if max_concurrency and max_concurrency > 0 else None
        self._clock = clock

    async def sync_range(self, offset: int, limit: int) -> List[PokemonSummary]:
        """Return stored Pokemon with ids in ``[offset+1, offset+limit]``."""
        result = await self.sync_range_detailed(offset, limit)
        return result.entities

    async def sync_range_detailed(self, offset: int, limit: int) -> RangeSyncResult:
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValidationError(f"Invalid offset: {offset!r}")
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= LIST_MAX_LIMIT:
            raise ValidationError(f"Invalid limit: {limit!r} (expected 1-{LIST_MAX_LIMIT})")

        result = RangeSyncResult(offset=offset, limit=limit)
        stored = await asyncio.to_thread(self._load_range, result.first_id, result.last_id)

        now = self._clock()
        present = set()
        for entity in stored:
            present.add(entity.id)
            if is_data_stale(entity.last_fetched, self._list_ttl_seconds, now):
                result.stale_ids.append(entity.id)
            else:
                result.fresh_ids.append(entity.id)
        result.missing_ids = [i for i in range(result.first_id, result.last_id + 1) if i not in present]

        to_fetch = result.missing_ids + result.stale_ids
        if not to_fetch:
            result.entities = stored
            return result

        logger.info(
            "Fetching %d pokemon (%d missing, %d stale) for range %d-%d",
            len(to_fetch), len(result.missing_ids), len(result.stale_ids),
            result.first_id, result.last_id,
        )
        semaphore = asyncio.Semaphore(self._max_concurrency) if self._max_concurrency else None
        outcomes = await asyncio.gather(*(self._backfill(pid, semaphore) for pid in to_fetch))
        result.failed_ids = sorted(pid for pid, ok in zip(to_fetch, outcomes) if not ok)
        if result.failed_ids:
            record_backfill_failures(len(result.failed_ids))
            logger.warning(
                "Range %d-%d: %d of %d backfills failed",
                result.first_id, result.last_id, len(result.failed_ids), len(to_fetch),
            )

        result.entities = await asyncio.to_thread(self._load_range, result.first_id, result.last_id)
        return result

    async def _backfill(self, pokemon_id: int, semaphore: Optional[asyncio.Semaphore]) -> bool:
        guard = semaphore if semaphore is not None else contextlib.nullcontext()
        async with guard:
            try:
                await self._fetcher.fetch(pokemon_id, force=True)
                return True
            except UpstreamUnavailable as exc:
                logger.warning("Failed to fetch pokemon %s: %s", pokemon_id, exc)
                return False
            except Exception:
                logger.exception("Unexpected error backfilling pokemon %s", pokemon_id)
                return False

    def _load_range(self, first_id: int, last_id: int) -> List[PokemonSummary]:
        db = self._session_factory()
        try:
            return [PokemonSummary.model_validate(row) for row in get_pokemon_range(db, first_id, last_id)]
        finally:
            db.close()
