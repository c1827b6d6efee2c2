"""
dexmirror - Domain exception types.

Every failure the core raises on purpose derives from ``DexMirrorError`` so
the HTTP layer can map it to a status code in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:  # pragma: no cover
    from dexmirror.rate_limiter import RateLimitDecision


@dataclass(eq=False)
class DexMirrorError(Exception):
    """Base error for domain failures.

    Attributes:
        message: Human-readable error message.
        details: Optional structured context for logs and clients.
    """

    message: str
    details: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)


class ValidationError(DexMirrorError):
    """Malformed id or range; raised before any fetch is attempted."""


@dataclass(eq=False)
class UpstreamUnavailable(DexMirrorError):
    """Transport error or non-success status from the upstream catalog."""

    status_code: Optional[int] = None
    url: Optional[str] = None

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class UpstreamPayloadError(UpstreamUnavailable):
    """Upstream answered, but with a body we cannot use."""


class StoreUnavailable(DexMirrorError):
    """Distributed counter backend is unreachable."""


class RateLimitExceeded(DexMirrorError):
    """A client used up its budget for a policy window.

    This is an expected outcome rather than an internal fault; the decision
    carries everything the client needs to back off.
    """

    def __init__(self, decision: "RateLimitDecision") -> None:
        self.decision = decision
        super().__init__(message=decision.message)
