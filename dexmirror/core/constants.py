"""
dexmirror - System-wide constants.

Every magic number lives here. Tunables that operators may want to change
per deployment live in ``dexmirror.config`` instead.
"""

# ---------------------------------------------------------------------------
# Catalog ids
# ---------------------------------------------------------------------------

POKEMON_ID_MIN: int = 1
POKEMON_ID_MAX: int = 10_000


# ---------------------------------------------------------------------------
# Range sync / pagination
# ---------------------------------------------------------------------------

LIST_DEFAULT_LIMIT: int = 151
LIST_MAX_LIMIT: int = 1000

PAGE_DEFAULT_LIMIT: int = 20
PAGE_MAX_LIMIT: int = 100

SEARCH_DEFAULT_LIMIT: int = 10
SEARCH_MAX_LIMIT: int = 50
SUGGESTIONS_MIN_LENGTH: int = 2

ABILITIES_DEFAULT_LIMIT: int = 50

MAX_COMPARE: int = 3

SORT_OPTIONS = ("id", "name", "height", "weight")

# ---------------------------------------------------------------------------
# Upstream
# ---------------------------------------------------------------------------

UPSTREAM_USER_AGENT: str = "dexmirror/1.0 (+catalog mirror)"
# Upstream index endpoints are paginated; one page covers every type/stat.
UPSTREAM_INDEX_PAGE_SIZE: int = 1000

# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

RATE_LIMIT_KEY_PREFIX: str = "rl:"
