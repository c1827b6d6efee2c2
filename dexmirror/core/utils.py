"""
dexmirror - Shared utilities.

Pure functions used across the whole service. No imports from other dexmirror
modules; only the standard library and dexmirror.core.constants are allowed.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from dexmirror.core.constants import (
    PAGE_DEFAULT_LIMIT,
    PAGE_MAX_LIMIT,
    POKEMON_ID_MAX,
    POKEMON_ID_MIN,
    SORT_OPTIONS,
)

_RESOURCE_ID_RE = re.compile(r"/(\d+)/?$")

_ROMAN = {"i": 1, "v": 5, "x": 10}


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def _parse_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def parse_pagination(page=None, limit=None) -> Tuple[int, int, int]:
    """Return ``(page, limit, skip)`` clamped to sane bounds."""
    page_num = max(1, _parse_int(page) or 1)
    limit_num = min(PAGE_MAX_LIMIT, max(1, _parse_int(limit) or PAGE_DEFAULT_LIMIT))
    return page_num, limit_num, (page_num - 1) * limit_num


def clamp_int(value, default: int, low: int, high: int) -> int:
    """Parse ``value`` and clamp it into ``[low, high]``; unparseable → ``default``."""
    parsed = _parse_int(value)
    if parsed is None:
        parsed = default
    return max(low, min(high, parsed))


def validate_pokemon_id(value) -> Optional[int]:
    """Return the id as an int, or ``None`` if it is not a plausible catalog id."""
    pokemon_id = _parse_int(value)
    if pokemon_id is None or not POKEMON_ID_MIN <= pokemon_id <= POKEMON_ID_MAX:
        return None
    return pokemon_id


def parse_multiple_pokemon_ids(raw: Optional[str]) -> List[int]:
    """Parse ``"1, 4,x,7"`` into ``[1, 4, 7]``; invalid entries are dropped."""
    if not raw or not isinstance(raw, str):
        return []
    ids = (validate_pokemon_id(part) for part in raw.split(","))
    return [i for i in ids if i is not None]


def validate_search_query(query: Optional[str], min_length: int = 2) -> Optional[str]:
    if not query or not isinstance(query, str):
        return None
    trimmed = query.strip()
    if len(trimmed) < min_length:
        return None
    return trimmed


def validate_sort_param(sort: Optional[str]) -> str:
    if not sort or sort not in SORT_OPTIONS:
        return "id"
    return sort


def calculate_total_pages(total: int, limit: int) -> int:
    if limit <= 0:
        return 0
    return math.ceil(total / limit)


def extract_resource_id(url: Optional[str]) -> Optional[int]:
    """Return the numeric id at the end of an upstream resource URL.

    ``https://pokeapi.co/api/v2/type/12/`` → ``12``.
    """
    if not url or not isinstance(url, str):
        return None
    match = _RESOURCE_ID_RE.search(url)
    return int(match.group(1)) if match else None


def parse_generation_name(name: Optional[str]) -> Optional[int]:
    """``"generation-iv"`` → ``4``; ``None`` when the name is not recognised."""
    if not name or not name.startswith("generation-"):
        return None
    suffix = name[len("generation-"):].lower()
    if suffix.isdigit():
        return int(suffix)
    if not suffix or any(ch not in _ROMAN for ch in suffix):
        return None
    total = 0
    for idx, ch in enumerate(suffix):
        value = _ROMAN[ch]
        if idx + 1 < len(suffix) and _ROMAN[suffix[idx + 1]] > value:
            total -= value
        else:
            total += value
    return total


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_data_stale(last_fetched: Optional[datetime], ttl_seconds: float, now: Optional[datetime] = None) -> bool:
    """True when ``last_fetched`` is unset or at least ``ttl_seconds`` old."""
    fetched = as_utc(last_fetched)
    if fetched is None:
        return True
    current = as_utc(now) if now is not None else utcnow()
    return (current - fetched).total_seconds() >= ttl_seconds


def iso_timestamp(value: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    ts = as_utc(value) if value is not None else utcnow()
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def humanize_seconds(seconds: int) -> str:
    """``600`` → ``"10 minutes"``, ``3600`` → ``"1 hour"``."""
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= size and seconds % size == 0:
            count = seconds // size
            return f"{count} {unit}" + ("" if count == 1 else "s")
    return f"{seconds} second" + ("" if seconds == 1 else "s")
