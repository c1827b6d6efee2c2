"""Freshness-aware synchronization of the local catalog mirror."""

from dexmirror.catalog.entity_fetcher import EntityFetcher
from dexmirror.catalog.range_sync import RangeSynchronizer, RangeSyncResult
from dexmirror.catalog.seeding import ReferenceSeeder

__all__ = ["EntityFetcher", "RangeSynchronizer", "RangeSyncResult", "ReferenceSeeder"]
