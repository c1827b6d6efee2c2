"""
HTTP glue for the rate-limit enforcer.

The general policy runs as middleware on every path except the liveness and
readiness probes; route-specific policies are FastAPI dependencies whose
headers take precedence over the general ones.
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from dexmirror import config
from dexmirror.core.errors import RateLimitExceeded
from dexmirror.rate_limiter import RateLimitDecision, RateLimitEnforcer

logger = logging.getLogger(__name__)

GENERAL_POLICY = "general"


def client_identifier(request: Request) -> str:
    """Peer address, or the first forwarded hop when behind a trusted proxy."""
    if config.TRUST_PROXY:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


def is_exempt(path: str) -> bool:
    return path in config.RATE_LIMIT_EXEMPT_PATHS


def _enforcer(request: Request) -> RateLimitEnforcer:
    return request.app.state.rate_limiter


def rate_limit_response(request: Request, decision: RateLimitDecision) -> JSONResponse:
    """Log the violation and build the 429 response."""
    logger.warning(
        "Rate limit exceeded for %s: ip=%s path=%s method=%s user_agent=%s limit=%s reset=%s",
        decision.policy.label,
        decision.client_id,
        request.url.path,
        request.method,
        request.headers.get("user-agent", ""),
        decision.limit,
        decision.reset_at.isoformat(),
    )
    return JSONResponse(status_code=429, content=decision.to_payload(), headers=decision.headers())


async def general_rate_limit_middleware(request: Request, call_next):
    """Apply the general policy to everything but the exempt probes."""
    if is_exempt(request.url.path):
        return await call_next(request)

    decision = await _enforcer(request).hit(GENERAL_POLICY, client_identifier(request))
    if not decision.allowed:
        return rate_limit_response(request, decision)

    response = await call_next(request)
    if "ratelimit-limit" not in response.headers:
        for name, value in decision.headers().items():
            response.headers[name] = value
    return response


def rate_limited(policy_name: str) -> Callable:
    """Dependency enforcing ``policy_name`` on a single route.

    Usage::

        @router.get("/search", dependencies=[Depends(rate_limited("search"))])
    """

    async def _dependency(request: Request, response: Response) -> None:
        decision = await _enforcer(request).hit(policy_name, client_identifier(request))
        if not decision.allowed:
            raise RateLimitExceeded(decision)
        for name, value in decision.headers().items():
            response.headers[name] = value

    return _dependency
