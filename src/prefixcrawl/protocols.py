"""
Core contracts and outcome types for prefixcrawl.

Every query issued against the autocomplete endpoint settles into exactly one
of four outcomes. The retry policy, the concurrency controller and the
explorer only ever look at these types, never at raw HTTP responses, so the
engine can be driven by any object implementing ``QueryClient``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol, Union

# ============================================================================
# Enums
# ============================================================================


class OutcomeKind(Enum):
    """Classification of a settled query."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_ERROR = "transient_error"
    FATAL_ERROR = "fatal_error"


# ============================================================================
# Outcomes
# ============================================================================


@dataclass(frozen=True)
class Success:
    """The endpoint answered with a list of matches."""

    results: List[str] = field(default_factory=list)
    status: int = 200

    kind = OutcomeKind.SUCCESS


@dataclass(frozen=True)
class RateLimited:
    """The endpoint signalled throttling (HTTP 429)."""

    status: int = 429
    retry_after: Optional[float] = None

    kind = OutcomeKind.RATE_LIMITED


@dataclass(frozen=True)
class TransientError:
    """Timeout, connection failure or a server-side error worth retrying."""

    error: str
    status: Optional[int] = None

    kind = OutcomeKind.TRANSIENT_ERROR


@dataclass(frozen=True)
class FatalError:
    """A response the client cannot interpret; never retried."""

    error: str
    status: Optional[int] = None

    kind = OutcomeKind.FATAL_ERROR


QueryOutcome = Union[Success, RateLimited, TransientError, FatalError]


# ============================================================================
# Protocols
# ============================================================================


class QueryClient(Protocol):
    """Anything that can run a prefix query and classify its result."""

    async def query(self, prefix: str) -> QueryOutcome:
        """Query the endpoint for ``prefix``. Must not raise for network failures."""
        ...
