"""
dexmirror - Centralised router registration.

This module is the single place where every APIRouter is mounted onto the
FastAPI application. Import and call ``register_routes(app)`` once in
``dexmirror.app``.

  GET  /                              - welcome text
  GET  /health, /health/ready         - probes (never rate limited)
  GET  /api/pokemon/list              - range sync
  GET  /api/pokemon                   - paginated browse of stored data
  GET  /api/pokemon/search            - search policy
  GET  /api/pokemon/suggestions       - suggestions policy
  GET  /api/pokemon/compare           - up to three Pokemon side by side
  GET  /api/pokemon/{id}[/fetch]      - entity fetcher
  GET  /api/types, /api/abilities     - reference data
  POST /api/seed                      - seed policy, runs in the background
  POST /api/admin/rate-limit/reset    - administrative counter reset
"""

from __future__ import annotations

import asyncio
import hmac
import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from dexmirror import config
from dexmirror.api.rate_limit import rate_limited
from dexmirror.api.schemas import (
    CompareResponse,
    Comparison,
    FetchResponse,
    HealthResponse,
    PageMeta,
    PokemonPageResponse,
    PokemonRangeResponse,
    RangeMeta,
    ReadinessResponse,
    RateLimitResetRequest,
    RateLimitResetResponse,
    SeedAccepted,
    SeedRequest,
    SearchResponse,
    SuggestionsResponse,
)
from dexmirror.core.constants import (
    ABILITIES_DEFAULT_LIMIT,
    LIST_DEFAULT_LIMIT,
    LIST_MAX_LIMIT,
    MAX_COMPARE,
    POKEMON_ID_MAX,
    SEARCH_DEFAULT_LIMIT,
    SEARCH_MAX_LIMIT,
    SUGGESTIONS_MIN_LENGTH,
)
from dexmirror.core.errors import DexMirrorError, ValidationError
from dexmirror.core.utils import (
    calculate_total_pages,
    clamp_int,
    iso_timestamp,
    parse_multiple_pokemon_ids,
    parse_pagination,
    validate_search_query,
    validate_sort_param,
)
from dexmirror.database import (
    browse_pokemon,
    count_types,
    get_pokemon_many,
    list_abilities,
    list_types,
    ping,
    search_pokemon,
    suggest_pokemon,
)
from dexmirror.domain.models import (
    AbilityRecord,
    PokemonDetail,
    PokemonName,
    PokemonSummary,
    TypeRecord,
)
from dexmirror.metrics import metrics_snapshot

logger = logging.getLogger(__name__)


async def _read(request: Request, fn, *args):
    """Run a blocking query with a fresh session in a worker thread."""
    session_factory = request.app.state.session_factory

    def _run():
        db = session_factory()
        try:
            return fn(db, *args)
        finally:
            db.close()

    return await asyncio.to_thread(_run)


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------

system_router = APIRouter(tags=["system"])


@system_router.get("/", response_class=PlainTextResponse)
async def root():
    return "Welcome to the dexmirror Pokedex API"


@system_router.get("/health", response_model=HealthResponse, response_model_exclude_none=True)
async def health_check(request: Request):
    """Database liveness plus counter backend and runtime metrics."""
    try:
        await _read(request, ping)
    except SQLAlchemyError as exc:
        logger.error("Health check failed: %s", exc)
        body = HealthResponse(
            status="unhealthy",
            timestamp=iso_timestamp(),
            database="disconnected",
            error=str(exc),
        )
        return JSONResponse(status_code=503, content=body.model_dump(exclude_none=True))
    store = request.app.state.counter_store
    return HealthResponse(
        status="healthy",
        timestamp=iso_timestamp(),
        database="connected",
        counter_backend=store.backend,
        counter_reachable=await store.ping(),
        metrics=metrics_snapshot(),
    )


@system_router.get("/health/ready", response_model=ReadinessResponse, response_model_exclude_none=True)
async def readiness_check(request: Request):
    """Ready once the type table has been seeded; upstream reachability is informational."""
    try:
        type_count = await _read(request, count_types)
    except SQLAlchemyError as exc:
        logger.error("Readiness check failed: %s", exc)
        body = ReadinessResponse(
            status="not ready",
            timestamp=iso_timestamp(),
            database="disconnected",
            ready=False,
            error=str(exc),
        )
        return JSONResponse(status_code=503, content=body.model_dump(exclude_none=True))
    if type_count == 0:
        body = ReadinessResponse(
            status="not ready",
            timestamp=iso_timestamp(),
            database="connected",
            ready=False,
            message="Database not seeded",
        )
        return JSONResponse(status_code=503, content=body.model_dump(exclude_none=True))
    return ReadinessResponse(
        status="ready",
        timestamp=iso_timestamp(),
        database="connected",
        ready=True,
        types=type_count,
        upstream="reachable" if await request.app.state.upstream.ping() else "unreachable",
    )


# ---------------------------------------------------------------------------
# Pokemon
# ---------------------------------------------------------------------------

pokemon_router = APIRouter(prefix="/api/pokemon", tags=["pokemon"])


@pokemon_router.get("/list", response_model=PokemonRangeResponse)
async def list_pokemon(request: Request, limit: Optional[str] = None, offset: Optional[str] = None):
    """Range sync over ids ``offset+1 .. offset+limit`` (out-of-range values are clamped)."""
    limit_num = clamp_int(limit, LIST_DEFAULT_LIMIT, 1, LIST_MAX_LIMIT)
    offset_num = clamp_int(offset, 0, 0, POKEMON_ID_MAX)
    result = await request.app.state.range_sync.sync_range_detailed(offset_num, limit_num)
    return PokemonRangeResponse(
        data=result.entities,
        meta=RangeMeta(
            limit=limit_num,
            offset=offset_num,
            count=len(result.entities),
            failed=result.failed_ids,
        ),
    )


@pokemon_router.get("", response_model=PokemonPageResponse)
async def browse(
    request: Request,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
    type: Optional[str] = None,
    sort: Optional[str] = None,
):
    page_num, limit_num, skip = parse_pagination(page, limit)
    search_term = search.strip() if search and search.strip() else None
    type_name = type.strip() if type and type.strip() else None
    rows, total = await _read(
        request, browse_pokemon, skip, limit_num, search_term, type_name, validate_sort_param(sort),
    )
    total_pages = calculate_total_pages(total, limit_num)
    return PokemonPageResponse(
        data=[PokemonSummary.model_validate(r) for r in rows],
        meta=PageMeta(
            page=page_num,
            limit=limit_num,
            total=total,
            total_pages=total_pages,
            has_next=page_num < total_pages,
            has_prev=page_num > 1,
        ),
    )


@pokemon_router.get(
    "/search",
    response_model=SearchResponse,
    dependencies=[Depends(rate_limited("search"))],
)
async def search(request: Request, q: Optional[str] = None, limit: Optional[str] = None):
    query = validate_search_query(q, min_length=1)
    if query is None:
        raise ValidationError("Search query is required")
    limit_num = clamp_int(limit, SEARCH_DEFAULT_LIMIT, 1, SEARCH_MAX_LIMIT)
    rows = await _read(request, search_pokemon, query, limit_num)
    results = [PokemonSummary.model_validate(r) for r in rows]
    return SearchResponse(query=query, results=results, count=len(results))


@pokemon_router.get(
    "/suggestions",
    response_model=SuggestionsResponse,
    dependencies=[Depends(rate_limited("suggestions"))],
)
async def suggestions(request: Request, q: Optional[str] = None, limit: Optional[str] = None):
    query = validate_search_query(q, min_length=SUGGESTIONS_MIN_LENGTH)
    if query is None:
        return SuggestionsResponse(query=(q or "").strip(), suggestions=[], count=0)
    limit_num = clamp_int(limit, 5, 1, SEARCH_DEFAULT_LIMIT)
    rows = await _read(request, suggest_pokemon, query, limit_num)
    names = [PokemonName.model_validate(r) for r in rows]
    return SuggestionsResponse(query=query, suggestions=names, count=len(names))


@pokemon_router.get("/compare", response_model=CompareResponse)
async def compare(request: Request, ids: Optional[str] = None):
    if not ids:
        raise ValidationError("Pokemon IDs are required (e.g. ?ids=1,4,7)")
    requested = parse_multiple_pokemon_ids(ids)
    if not requested:
        raise ValidationError("No valid Pokemon IDs provided")
    if len(requested) > MAX_COMPARE:
        raise ValidationError(f"Maximum {MAX_COMPARE} Pokemon can be compared at once")

    rows = await _read(request, get_pokemon_many, requested)
    if not rows:
        raise HTTPException(status_code=404, detail="No Pokemon found with the provided IDs")
    found = [r.id for r in rows]
    return CompareResponse(
        pokemon=[PokemonDetail.model_validate(r) for r in rows],
        comparison=Comparison(
            requested=requested,
            found=found,
            missing=[i for i in requested if i not in found],
        ),
    )


@pokemon_router.get("/{pokemon_id}", response_model=PokemonDetail)
async def get_pokemon_detail(request: Request, pokemon_id: str, refresh: bool = False):
    return await request.app.state.entity_fetcher.fetch(pokemon_id, force=refresh)


@pokemon_router.get("/{pokemon_id}/fetch", response_model=FetchResponse)
async def fetch_pokemon(request: Request, pokemon_id: str):
    pokemon = await request.app.state.entity_fetcher.fetch(pokemon_id)
    return FetchResponse(message=f"Successfully fetched {pokemon.name}", pokemon=pokemon)


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

reference_router = APIRouter(prefix="/api", tags=["reference"])


@reference_router.get("/types", response_model=List[TypeRecord])
async def get_types(request: Request):
    rows = await _read(request, list_types)
    return [TypeRecord.model_validate(r) for r in rows]


@reference_router.get("/abilities", response_model=List[AbilityRecord])
async def get_abilities(request: Request, limit: Optional[str] = None):
    limit_num = clamp_int(limit, ABILITIES_DEFAULT_LIMIT, 1, LIST_MAX_LIMIT)
    rows = await _read(request, list_abilities, limit_num)
    return [AbilityRecord.model_validate(r) for r in rows]


# ---------------------------------------------------------------------------
# Seeding / admin
# ---------------------------------------------------------------------------

admin_router = APIRouter(prefix="/api", tags=["admin"])


async def _run_seed(seeder, fetcher, count: int) -> None:
    try:
        await seeder.seed_initial_pokemon(fetcher, count)
    except DexMirrorError as exc:
        logger.error("Seeding aborted: %s", exc)
    except Exception:
        logger.exception("Seeding aborted unexpectedly")


@admin_router.post(
    "/seed",
    status_code=202,
    response_model=SeedAccepted,
    dependencies=[Depends(rate_limited("seed"))],
)
async def seed(
    request: Request,
    background_tasks: BackgroundTasks,
    body: Optional[SeedRequest] = None,
):
    count = body.count if body is not None else SeedRequest().count
    if count > config.SEED_MAX_COUNT:
        raise ValidationError(f"Maximum {config.SEED_MAX_COUNT} Pokemon can be seeded at once")
    state = request.app.state
    background_tasks.add_task(_run_seed, state.seeder, state.entity_fetcher, count)
    return SeedAccepted(message=f"Seeding {count} Pokemon in the background")


@admin_router.post("/admin/rate-limit/reset", response_model=RateLimitResetResponse)
async def reset_rate_limit(
    request: Request,
    body: RateLimitResetRequest,
    x_admin_key: Optional[str] = Header(None),
):
    if not config.ADMIN_KEY:
        raise HTTPException(status_code=404, detail="Not found")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, config.ADMIN_KEY):
        raise HTTPException(status_code=403, detail="Invalid admin key")
    await request.app.state.rate_limiter.reset(body.policy, body.client)
    return RateLimitResetResponse(policy=body.policy, client=body.client)


def register_routes(app: FastAPI) -> None:
    """Mount all routers onto ``app``.

    Static ``/api/pokemon/*`` paths are declared before ``/{pokemon_id}`` so
    they are matched first.
    """
    app.include_router(system_router)
    app.include_router(pokemon_router)
    app.include_router(reference_router)
    app.include_router(admin_router)
