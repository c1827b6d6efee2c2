"""
Centralized configuration for dexmirror.
All settings come from environment variables for 12-factor deployment.
"""

import os


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.environ.get(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


APP_ENV = os.environ.get("APP_ENV", "development").strip().lower()

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    f"sqlite:///{os.path.join(BASE_DIR, 'dexmirror.db')}",
)
# Empty = in-process rate-limit counters only.
REDIS_URL = os.environ.get("REDIS_URL", "").strip()

# ---------------------------------------------------------------------------
# Upstream catalog (PokeAPI)
# ---------------------------------------------------------------------------
POKEAPI_BASE_URL = os.environ.get("POKEAPI_BASE_URL", "https://pokeapi.co/api/v2").rstrip("/")
UPSTREAM_TIMEOUT_SECONDS = float(os.environ.get("UPSTREAM_TIMEOUT_SECONDS", "15"))
HEALTH_CHECK_TIMEOUT_SECONDS = float(os.environ.get("HEALTH_CHECK_TIMEOUT_SECONDS", "5"))

# ---------------------------------------------------------------------------
# Freshness windows
# ---------------------------------------------------------------------------
CACHE_TTL_DETAIL_SECONDS = int(os.environ.get("CACHE_TTL_DETAIL_SECONDS", str(24 * 60 * 60)))
# List-level TTL is shorter than the per-entity one.
CACHE_TTL_LIST_SECONDS = int(os.environ.get("CACHE_TTL_LIST_SECONDS", str(60 * 60)))
CACHE_TTL_TYPES_SECONDS = int(os.environ.get("CACHE_TTL_TYPES_SECONDS", str(7 * 24 * 60 * 60)))
CACHE_TTL_STATS_SECONDS = int(os.environ.get("CACHE_TTL_STATS_SECONDS", str(7 * 24 * 60 * 60)))

# Max concurrent upstream backfills per range sync (<= 0 disables the cap).
SYNC_MAX_CONCURRENCY = int(os.environ.get("SYNC_MAX_CONCURRENCY", "10"))

# ---------------------------------------------------------------------------
# Rate limiting - (window seconds, max hits) per route category
# ---------------------------------------------------------------------------
RATE_LIMIT_GENERAL_WINDOW_SECONDS = int(os.environ.get("RATE_LIMIT_GENERAL_WINDOW_SECONDS", "600"))
RATE_LIMIT_GENERAL_MAX = int(
    os.environ.get("RATE_LIMIT_GENERAL_MAX", "1000" if APP_ENV == "test" else "300")
)
RATE_LIMIT_SEARCH_WINDOW_SECONDS = int(os.environ.get("RATE_LIMIT_SEARCH_WINDOW_SECONDS", "300"))
RATE_LIMIT_SEARCH_MAX = int(os.environ.get("RATE_LIMIT_SEARCH_MAX", "30"))
RATE_LIMIT_SUGGESTIONS_WINDOW_SECONDS = int(os.environ.get("RATE_LIMIT_SUGGESTIONS_WINDOW_SECONDS", "300"))
RATE_LIMIT_SUGGESTIONS_MAX = int(os.environ.get("RATE_LIMIT_SUGGESTIONS_MAX", "60"))
RATE_LIMIT_SEED_WINDOW_SECONDS = int(os.environ.get("RATE_LIMIT_SEED_WINDOW_SECONDS", "3600"))
RATE_LIMIT_SEED_MAX = int(os.environ.get("RATE_LIMIT_SEED_MAX", "3"))

# Liveness/readiness probes never touch a counter.
RATE_LIMIT_EXEMPT_PATHS = frozenset({"/health", "/health/ready"})
# Honour X-Forwarded-For when running behind a reverse proxy.
TRUST_PROXY = _env_bool("TRUST_PROXY", False)

# ---------------------------------------------------------------------------
# Admin / seeding
# ---------------------------------------------------------------------------
# Key required for administrative endpoints (empty = admin endpoints disabled).
ADMIN_KEY = os.environ.get("ADMIN_KEY", "")
SEED_MAX_COUNT = int(os.environ.get("SEED_MAX_COUNT", "1000"))
SEED_BATCH_SIZE = int(os.environ.get("SEED_BATCH_SIZE", "10"))
SEED_BATCH_PAUSE_SECONDS = float(os.environ.get("SEED_BATCH_PAUSE_SECONDS", "1.0"))

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------
PORT = int(os.environ.get("PORT", "3000"))
CORS_ORIGINS = [
    s.strip()
    for s in os.environ.get(
        "CORS_ORIGINS",
        "http://localhost:8081,http://localhost:19006,http://localhost:19000",
    ).split(",")
    if s.strip()
]
