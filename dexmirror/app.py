"""
dexmirror - FastAPI Application
Main entry point for the API server.

Run with:
    uvicorn dexmirror.app:app --reload --host 0.0.0.0 --port 3000
"""

import logging
import traceback
from contextlib import asynccontextmanager
from typing import Callable, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from dexmirror import config
from dexmirror.api.rate_limit import general_rate_limit_middleware, rate_limit_response
from dexmirror.api.routes import register_routes
from dexmirror.catalog import EntityFetcher, RangeSynchronizer, ReferenceSeeder
from dexmirror.core.errors import RateLimitExceeded, UpstreamUnavailable, ValidationError
from dexmirror.core.logging import configure_logging
from dexmirror.core.utils import iso_timestamp
from dexmirror.counter_store import CounterStore, build_counter_store
from dexmirror.data_pipeline.fetcher import PokeApiClient
from dexmirror.database import SessionLocal, init_db
from dexmirror.rate_limiter import RateLimitEnforcer, RateLimitPolicy

configure_logging()
logger = logging.getLogger(__name__)


def _error_body(status_code: int, error: str, details=None) -> dict:
    body = {"error": error, "statusCode": status_code, "timestamp": iso_timestamp()}
    if details is not None:
        body["details"] = details
    return body


def create_app(
    *,
    counter_store: Optional[CounterStore] = None,
    session_factory: Optional[sessionmaker] = None,
    upstream: Optional[PokeApiClient] = None,
    policies: Optional[Mapping[str, RateLimitPolicy]] = None,
    rate_limit_clock: Optional[Callable[[], float]] = None,
) -> FastAPI:
    """Build the application.

    Collaborators passed in are used as-is and left open on shutdown;
    anything not passed is built in the lifespan from ``dexmirror.config``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Runs once on startup, yields for the lifetime of the app, then cleans up."""
        factory = session_factory
        if factory is None:
            logger.info("Initialising database...")
            init_db()
            factory = SessionLocal
            logger.info("Database ready.")

        store = counter_store or await build_counter_store(config.REDIS_URL)
        client = upstream or PokeApiClient()
        enforcer_kwargs = {"clock": rate_limit_clock} if rate_limit_clock else {}
        fetcher = EntityFetcher(client, session_factory=factory)

        app.state.session_factory = factory
        app.state.counter_store = store
        app.state.upstream = client
        app.state.rate_limiter = RateLimitEnforcer(store, policies, **enforcer_kwargs)
        app.state.entity_fetcher = fetcher
        app.state.range_sync = RangeSynchronizer(fetcher, session_factory=factory)
        app.state.seeder = ReferenceSeeder(client, session_factory=factory)
        logger.info("Rate limiting backed by %s counters", store.backend)

        yield  # Application is running

        if upstream is None:
            await client.close()
        if counter_store is None:
            await store.close()

    app = FastAPI(
        title="dexmirror",
        version="1.0.0",
        description="Local Pokedex mirror with freshness-aware caching of PokeAPI",
        lifespan=lifespan,
    )

    # Added first so CORS wraps it and 429s still carry CORS headers.
    app.middleware("http")(general_rate_limit_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["RateLimit-Limit", "RateLimit-Remaining", "RateLimit-Reset", "RateLimit-Policy", "Retry-After"],
    )

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content=_error_body(400, exc.message, exc.details))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=_error_body(400, "Invalid request", jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(UpstreamUnavailable)
    async def upstream_error_handler(request: Request, exc: UpstreamUnavailable):
        if exc.not_found:
            return JSONResponse(status_code=404, content=_error_body(404, "Pokemon not found"))
        return JSONResponse(
            status_code=502,
            content=_error_body(502, "Upstream catalog unavailable", {"reason": exc.message}),
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return rate_limit_response(request, exc.decision)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.status_code, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method, request.url.path, exc, traceback.format_exc(),
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "type": type(exc).__name__,
                "path": request.url.path,
            },
        )

    register_routes(app)
    return app


app = create_app()


# ---------------------------------------------------------------------------
# Development entry-point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dexmirror.app:app",
        host="0.0.0.0",
        port=config.PORT,
        reload=True,
    )
