"""
HTTP client for the autocomplete endpoint.

Issues ``GET <endpoint>?query=<prefix>`` and converts whatever happens into a
``QueryOutcome``. Network failures never escape as exceptions; retrying is
the explorer's job, so this client makes exactly one attempt per call.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Dict, Optional

import aiohttp
import structlog

from prefixcrawl.config.config import EndpointConfig
from prefixcrawl.exceptions import ClientNotInitializedError
from prefixcrawl.observability import metrics
from prefixcrawl.protocols import FatalError, QueryOutcome, RateLimited, Success, TransientError

logger = structlog.get_logger(__name__)

TRANSIENT_STATUSES = frozenset({408, 500, 502, 503, 504})


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        # HTTP-date form is not used by the endpoint
        return None


class AutocompleteClient:
    """Single-attempt client for the prefix autocomplete endpoint."""

    def __init__(self, config: EndpointConfig):
        self.config = config
        self.session: Optional[aiohttp.ClientSession] = None
        self._owns_session = True
        self._total_queries = 0
        self._status_counts: Dict[int, int] = {}

        logger.info("Autocomplete client created", url=config.url, timeout=config.timeout)

    async def initialize(self, session: Optional[aiohttp.ClientSession] = None) -> None:
        """Open the HTTP session (or adopt ``session``)."""
        if self.session is not None:
            return
        if session is not None:
            self.session = session
            self._owns_session = False
        else:
            connector = aiohttp.TCPConnector(limit=0, ttl_dns_cache=30, keepalive_timeout=30)
            self.session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
                headers={"User-Agent": self.config.user_agent, "Accept": "application/json"},
            )
            self._owns_session = True
        logger.info("Autocomplete client session initialized")

    async def close(self) -> None:
        if self.session is not None and self._owns_session:
            await self.session.close()
        self.session = None
        logger.info("Autocomplete client closed")

    async def __aenter__(self) -> "AutocompleteClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def query(self, prefix: str) -> QueryOutcome:
        """
        Query the endpoint once for ``prefix``.

        Returns:
            Success with the result list, RateLimited on 429, TransientError on
            timeouts, connection failures and retryable statuses, FatalError
            for anything the client cannot interpret.
        """
        if self.session is None:
            raise ClientNotInitializedError()

        self._total_queries += 1
        start = time.monotonic()
        try:
            async with self.session.get(
                self.config.url,
                params={self.config.query_param: prefix},
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            ) as response:
                status = response.status
                self._status_counts[status] = self._status_counts.get(status, 0) + 1

                if status == 429:
                    return RateLimited(retry_after=_parse_retry_after(response.headers.get("Retry-After")))
                if status in TRANSIENT_STATUSES:
                    return TransientError(error=f"HTTP {status}", status=status)
                if not 200 <= status < 300:
                    return FatalError(error=f"HTTP {status}", status=status)

                body = await response.read()
        except asyncio.TimeoutError:
            return TransientError(error=f"timed out after {self.config.timeout}s")
        except aiohttp.ClientError as e:
            return TransientError(error=f"{type(e).__name__}: {e}")
        finally:
            metrics.histogram("request_latency_seconds", time.monotonic() - start)

        return self._parse_body(prefix, body, status)

    def _parse_body(self, prefix: str, body: bytes, status: int) -> QueryOutcome:
        try:
            payload: Any = json.loads(body.decode("utf-8"))
        except UnicodeDecodeError as e:
            logger.warning("Response body is not UTF-8", prefix=prefix, error=str(e))
            return FatalError(error=f"invalid encoding: {e}", status=status)
        except json.JSONDecodeError as e:
            logger.warning("Undecodable response body", prefix=prefix, error=str(e))
            return FatalError(error=f"invalid JSON: {e}", status=status)

        if not isinstance(payload, dict):
            return FatalError(error="response is not a JSON object", status=status)

        results = payload.get("results") or []
        if not isinstance(results, list):
            return FatalError(error="'results' is not a list", status=status)

        return Success(results=[str(item) for item in results], status=status)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_queries": self._total_queries,
            "status_counts": dict(self._status_counts),
        }
