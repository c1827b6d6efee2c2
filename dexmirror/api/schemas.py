"""
dexmirror - API request/response schemas (Pydantic).

Entity shapes come from ``dexmirror.domain.models``; this module only adds
the envelopes the HTTP layer wraps them in.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from dexmirror.domain.models import PokemonDetail, PokemonName, PokemonSummary


# ---------------------------------------------------------------------------
# Range sync / browse
# ---------------------------------------------------------------------------

class RangeMeta(BaseModel):
    limit: int
    offset: int
    count: int
    failed: List[int] = []


class PokemonRangeResponse(BaseModel):
    data: List[PokemonSummary]
    meta: RangeMeta


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PokemonPageResponse(BaseModel):
    data: List[PokemonSummary]
    meta: PageMeta


class SearchResponse(BaseModel):
    query: str
    results: List[PokemonSummary]
    count: int


class SuggestionsResponse(BaseModel):
    query: str
    suggestions: List[PokemonName]
    count: int


class Comparison(BaseModel):
    requested: List[int]
    found: List[int]
    missing: List[int]


class CompareResponse(BaseModel):
    pokemon: List[PokemonDetail]
    comparison: Comparison


class FetchResponse(BaseModel):
    message: str
    pokemon: PokemonDetail


# ---------------------------------------------------------------------------
# Seeding / admin
# ---------------------------------------------------------------------------

class SeedRequest(BaseModel):
    count: int = Field(151, ge=1)


class SeedAccepted(BaseModel):
    message: str


class RateLimitResetRequest(BaseModel):
    policy: str
    client: str


class RateLimitResetResponse(BaseModel):
    status: str = "ok"
    policy: str
    client: str


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str
    timestamp: str
    database: str
    counter_backend: Optional[str] = None
    counter_reachable: Optional[bool] = None
    metrics: Optional[dict] = None
    error: Optional[str] = None


class ReadinessResponse(BaseModel):
    status: str
    timestamp: str
    database: str
    ready: bool
    types: Optional[int] = None
    upstream: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
