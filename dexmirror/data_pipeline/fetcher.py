"""
dexmirror - Upstream catalog (PokeAPI) client.

Wraps every HTTP call to the upstream catalog into a single, reusable class.
Calls are not retried: a transport error or a non-success status surfaces as
``UpstreamUnavailable`` and the caller decides what to do.

Usage::

    client  = PokeApiClient()
    payload = await client.fetch_pokemon(25)
    types   = await client.fetch_resource_index("type")
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from dexmirror import config
from dexmirror.core.constants import UPSTREAM_INDEX_PAGE_SIZE, UPSTREAM_USER_AGENT
from dexmirror.core.errors import UpstreamPayloadError, UpstreamUnavailable
from dexmirror.metrics import record_upstream_error

logger = logging.getLogger(__name__)

_HEADERS = {"User-Agent": UPSTREAM_USER_AGENT, "Accept": "application/json"}


class PokeApiClient:
    """Async HTTP client for the upstream catalog.

    Instantiate once per process; the internal ``httpx.AsyncClient`` is
    lazily created and reused across calls.
    """

    def __init__(
        self,
        base_url: str = config.POKEAPI_BASE_URL,
        timeout: float = config.UPSTREAM_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _client_get(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers=_HEADERS,
                timeout=self._timeout,
                follow_redirects=True,
            )
        return self._client

    async def get_json(self, url: str, timeout: Optional[float] = None):
        """GET ``url`` and return the decoded JSON body.

        Raises ``UpstreamUnavailable`` on transport errors and non-2xx
        responses, ``UpstreamPayloadError`` when the body is not JSON.
        """
        client = await self._client_get()
        kwargs = {"timeout": timeout} if timeout is not None else {}
        try:
            resp = await client.get(url, **kwargs)
        except httpx.HTTPError as exc:
            record_upstream_error()
            logger.error("Upstream request failed for %s: %s", url, exc)
            raise UpstreamUnavailable(
                message=f"Upstream request failed: {exc.__class__.__name__}",
                url=url,
            ) from exc

        if resp.status_code >= 400:
            record_upstream_error()
            logger.error("Upstream HTTP error %s for %s", resp.status_code, url)
            raise UpstreamUnavailable(
                message=f"Upstream request failed: {resp.status_code}",
                status_code=resp.status_code,
                url=url,
            )

        try:
            return resp.json()
        except ValueError as exc:
            record_upstream_error()
            raise UpstreamPayloadError(
                message="Upstream returned a non-JSON body",
                status_code=resp.status_code,
                url=url,
            ) from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_pokemon(self, pokemon_id: int) -> dict:
        """Fetch ``/pokemon/{id}``."""
        data = await self.get_json(f"{self._base_url}/pokemon/{pokemon_id}")
        if not isinstance(data, dict):
            raise UpstreamPayloadError(message=f"Unexpected payload for pokemon {pokemon_id}")
        return data

    async def fetch_resource_index(self, resource: str) -> List[dict]:
        """Fetch the ``{name, url}`` index of a resource (``type``, ``stat`` …)."""
        data = await self.get_json(f"{self._base_url}/{resource}?limit={UPSTREAM_INDEX_PAGE_SIZE}")
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise UpstreamPayloadError(message=f"Unexpected index payload for {resource}")
        return results

    async def fetch_url(self, url: str) -> dict:
        """Fetch an absolute resource URL taken from another payload."""
        data = await self.get_json(url)
        if not isinstance(data, dict):
            raise UpstreamPayloadError(message=f"Unexpected payload for {url}")
        return data

    async def ping(self) -> bool:
        """Cheap reachability check with a short fixed timeout."""
        try:
            await self.get_json(
                f"{self._base_url}/type?limit=1",
                timeout=config.HEALTH_CHECK_TIMEOUT_SECONDS,
            )
        except UpstreamUnavailable:
            return False
        return True

    async def close(self) -> None:
        """Cleanly close the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
