"""
Unit tests for the autocomplete HTTP client.

Uses aioresponses to mock HTTP responses and checks how each response is
classified into a query outcome.
"""

import asyncio

import aiohttp
import pytest
import pytest_asyncio
from aioresponses import aioresponses
from prefixcrawl.config import EndpointConfig
from prefixcrawl.crawler.http_client import AutocompleteClient, _parse_retry_after
from prefixcrawl.exceptions import ClientNotInitializedError
from prefixcrawl.protocols import FatalError, OutcomeKind, RateLimited, Success, TransientError

from tests.helpers.metric_delta import histogram_observes

ENDPOINT = "http://test.local/v3/autocomplete"


@pytest_asyncio.fixture
async def client():
    """Initialized client, closed after the test."""
    http_client = AutocompleteClient(EndpointConfig(url=ENDPOINT, timeout=1.0))
    await http_client.initialize()
    yield http_client
    await http_client.close()


class TestClassification:
    @pytest.mark.asyncio
    async def test_success_parses_results(self, client):
        with aioresponses() as m:
            m.get(f"{ENDPOINT}?query=a", payload={"version": "v3", "count": 2, "results": ["aa", "ab"]})

            outcome = await client.query("a")

        assert isinstance(outcome, Success)
        assert outcome.results == ["aa", "ab"]
        assert outcome.kind is OutcomeKind.SUCCESS

    @pytest.mark.asyncio
    async def test_missing_results_is_empty_success(self, client):
        with aioresponses() as m:
            m.get(f"{ENDPOINT}?query=zz", payload={"version": "v3", "count": 0})

            outcome = await client.query("zz")

        assert outcome == Success(results=[])

    @pytest.mark.asyncio
    async def test_rate_limited_with_retry_after(self, client):
        with aioresponses() as m:
            m.get(f"{ENDPOINT}?query=b", status=429, headers={"Retry-After": "2"})

            outcome = await client.query("b")

        assert isinstance(outcome, RateLimited)
        assert outcome.retry_after == 2.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [408, 500, 502, 503, 504])
    async def test_retryable_statuses_are_transient(self, client, status):
        with aioresponses() as m:
            m.get(f"{ENDPOINT}?query=c", status=status)

            outcome = await client.query("c")

        assert isinstance(outcome, TransientError)
        assert outcome.status == status

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    async def test_other_client_errors_are_fatal(self, client, status):
        with aioresponses() as m:
            m.get(f"{ENDPOINT}?query=d", status=status)

            outcome = await client.query("d")

        assert isinstance(outcome, FatalError)
        assert outcome.error == f"HTTP {status}"

    @pytest.mark.asyncio
    async def test_invalid_json_is_fatal(self, client):
        with aioresponses() as m:
            m.get(f"{ENDPOINT}?query=e", body="<html>oops</html>")

            outcome = await client.query("e")

        assert isinstance(outcome, FatalError)
        assert "invalid JSON" in outcome.error

    @pytest.mark.asyncio
    async def test_non_utf8_body_is_fatal(self, client):
        with aioresponses() as m:
            m.get(f"{ENDPOINT}?query=e", body=b'{"results": ["\xff"]}')

            outcome = await client.query("e")

        assert isinstance(outcome, FatalError)
        assert "invalid encoding" in outcome.error
        assert outcome.status == 200

    @pytest.mark.asyncio
    async def test_non_object_body_is_fatal(self, client):
        with aioresponses() as m:
            m.get(f"{ENDPOINT}?query=f", payload=["not", "an", "object"])

            outcome = await client.query("f")

        assert isinstance(outcome, FatalError)

    @pytest.mark.asyncio
    async def test_non_list_results_is_fatal(self, client):
        with aioresponses() as m:
            m.get(f"{ENDPOINT}?query=g", payload={"results": "gg"})

            outcome = await client.query("g")

        assert isinstance(outcome, FatalError)

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, client):
        with aioresponses() as m:
            m.get(f"{ENDPOINT}?query=h", exception=aiohttp.ClientConnectionError("Connection reset"))

            outcome = await client.query("h")

        assert isinstance(outcome, TransientError)
        assert "Connection reset" in outcome.error

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, client):
        with aioresponses() as m:
            m.get(f"{ENDPOINT}?query=i", exception=asyncio.TimeoutError())

            outcome = await client.query("i")

        assert isinstance(outcome, TransientError)
        assert "timed out" in outcome.error


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_query_before_initialize_raises(self):
        http_client = AutocompleteClient(EndpointConfig(url=ENDPOINT))
        with pytest.raises(ClientNotInitializedError):
            await http_client.query("a")

    @pytest.mark.asyncio
    async def test_context_manager_opens_and_closes(self):
        async with AutocompleteClient(EndpointConfig(url=ENDPOINT)) as http_client:
            assert http_client.session is not None
        assert http_client.session is None

    @pytest.mark.asyncio
    async def test_adopted_session_is_not_closed(self):
        async with aiohttp.ClientSession() as session:
            http_client = AutocompleteClient(EndpointConfig(url=ENDPOINT))
            await http_client.initialize(session)
            await http_client.close()
            assert not session.closed

    @pytest.mark.asyncio
    async def test_stats_and_latency_histogram(self, client):
        with aioresponses() as m:
            m.get(f"{ENDPOINT}?query=a", payload={"results": []})
            m.get(f"{ENDPOINT}?query=b", status=503)

            with histogram_observes("prefixcrawl_request_latency_seconds", 2):
                await client.query("a")
                await client.query("b")

        stats = client.get_stats()
        assert stats["total_queries"] == 2
        assert stats["status_counts"] == {200: 1, 503: 1}


@pytest.mark.parametrize(
    "header, expected",
    [(None, None), ("", None), ("3", 3.0), ("0.5", 0.5), ("-4", 0.0), ("Wed, 21 Oct 2015 07:28:00 GMT", None)],
)
def test_parse_retry_after(header, expected):
    assert _parse_retry_after(header) == expected
