"""
Tests for the single-page fetcher.

HTTP traffic is mocked with aioresponses; assertions stick to the returned
``PageResult`` and the number of requests actually issued.
"""

import asyncio

import aiohttp
import pytest
from aioresponses import aioresponses
from domainresearch.config import FetchConfig, ResearchConfig
from domainresearch.config.config import DEFAULT_USER_AGENT
from domainresearch.crawler.http_client import HttpClient
from domainresearch.protocols import PageStatus

URL = "https://example.com/page"
HTML = "<html><head><title>Hello</title></head><body>Hi</body></html>"


def request_count(m: aioresponses) -> int:
    return sum(len(calls) for calls in m.requests.values())


@pytest.mark.unit
class TestHttpClientClassification:
    @pytest.mark.asyncio
    async def test_html_page_is_ok(self, http_client):
        with aioresponses() as m:
            m.get(URL, status=200, body=HTML, content_type="text/html")

            result = await http_client.fetch(URL)

        assert result.status is PageStatus.OK
        assert result.html == HTML
        assert result.http_status == 200
        assert result.attempts == 1
        assert result.error is None
        assert result.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_xhtml_content_type_is_accepted(self, http_client):
        with aioresponses() as m:
            m.get(URL, status=200, body=HTML, content_type="application/xhtml+xml")

            result = await http_client.fetch(URL)

        assert result.status is PageStatus.OK

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [403, 429])
    async def test_blocked_statuses_are_not_retried(self, http_client, status):
        with aioresponses() as m:
            m.get(URL, status=status, body="denied", content_type="text/html", repeat=True)

            result = await http_client.fetch(URL)

            assert request_count(m) == 1

        assert result.status is PageStatus.BLOCKED
        assert result.http_status == status
        assert result.attempts == 1
        assert result.html is None
        assert result.error == f"HTTP {status}"

    @pytest.mark.asyncio
    async def test_non_html_is_failed(self, http_client):
        with aioresponses() as m:
            m.get(URL, status=200, payload={"ok": True}, repeat=True)

            result = await http_client.fetch(URL)

        assert result.status is PageStatus.FAILED
        assert "Non-HTML" in result.error
        assert result.html is None

    @pytest.mark.asyncio
    async def test_charset_from_content_type_is_used(self, http_client):
        with aioresponses() as m:
            m.get(
                URL,
                status=200,
                body="<html><body>Café</body></html>".encode("latin-1"),
                content_type="text/html; charset=latin-1",
            )

            result = await http_client.fetch(URL)

        assert result.status is PageStatus.OK
        assert "Café" in result.html

    @pytest.mark.asyncio
    async def test_browser_headers_are_sent(self, http_client):
        with aioresponses() as m:
            m.get(URL, status=200, body=HTML, content_type="text/html")

            await http_client.fetch(URL)

            call = next(iter(m.requests.values()))[0]

        headers = call.kwargs["headers"]
        assert headers["User-Agent"] == DEFAULT_USER_AGENT
        assert "text/html" in headers["Accept"]


@pytest.mark.unit
class TestHttpClientBodyCap:
    @pytest.mark.asyncio
    async def test_body_over_cap_is_too_large_and_not_retried(self):
        config = ResearchConfig(fetch=FetchConfig(max_body_bytes=1024, backoff_base=0.01, backoff_max=0.04))
        async with HttpClient(config) as client:
            with aioresponses() as m:
                m.get(URL, status=200, body="x" * 4096, content_type="text/html", repeat=True)

                result = await client.fetch(URL)

                assert request_count(m) == 1

        assert result.status is PageStatus.TOO_LARGE
        assert result.html is None
        assert result.attempts == 1
        assert "1024" in result.error

    @pytest.mark.asyncio
    async def test_body_exactly_at_cap_is_ok(self):
        config = ResearchConfig(fetch=FetchConfig(max_body_bytes=1024))
        async with HttpClient(config) as client:
            with aioresponses() as m:
                m.get(URL, status=200, body="x" * 1024, content_type="text/html")

                result = await client.fetch(URL)

        assert result.status is PageStatus.OK
        assert len(result.html) == 1024


@pytest.mark.unit
class TestHttpClientRetryBehavior:
    @pytest.mark.asyncio
    async def test_404_is_failed_after_all_retries(self, http_client, deterministic_jitter):
        with aioresponses() as m:
            m.get(URL, status=404, body="missing", content_type="text/html", repeat=True)

            result = await http_client.fetch(URL)

            assert request_count(m) == 3

        assert result.status is PageStatus.FAILED
        assert result.error == "HTTP 404"
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_retry_on_503_then_success(self, http_client, deterministic_jitter):
        with aioresponses() as m:
            m.get(URL, status=503, body="", content_type="text/html")
            m.get(URL, status=200, body=HTML, content_type="text/html")

            result = await http_client.fetch(URL)

        assert result.status is PageStatus.OK
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_timeout_is_classified_and_retried(self, http_client, deterministic_jitter):
        with aioresponses() as m:
            m.get(URL, exception=asyncio.TimeoutError(), repeat=True)

            result = await http_client.fetch(URL)

            assert request_count(m) == 3

        assert result.status is PageStatus.TIMEOUT
        assert result.attempts == 3
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_network_error_is_failed(self, http_client, deterministic_jitter):
        with aioresponses() as m:
            m.get(URL, exception=aiohttp.ClientConnectionError("connection refused"), repeat=True)

            result = await http_client.fetch(URL)

        assert result.status is PageStatus.FAILED
        assert "ClientConnectionError" in result.error

    @pytest.mark.asyncio
    async def test_unexpected_error_is_failed_not_raised(self, http_client, deterministic_jitter):
        with aioresponses() as m:
            m.get(URL, exception=RuntimeError("unexpected page-level error"), repeat=True)

            result = await http_client.fetch(URL)

            assert request_count(m) == 3

        assert result.status is PageStatus.FAILED
        assert result.error == "RuntimeError: unexpected page-level error"
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_unexpected_error_from_injected_session(self, test_config, deterministic_jitter):
        class ExplodingSession:
            def get(self, url, **kwargs):
                raise KeyError("no route")

        client = HttpClient(test_config, session=ExplodingSession())

        result = await client.fetch(URL)

        assert result.status is PageStatus.FAILED
        assert result.error.startswith("KeyError")
        assert client.get_stats()["in_flight_requests"] == 0

    @pytest.mark.asyncio
    async def test_zero_retries_makes_one_attempt(self):
        config = ResearchConfig(fetch=FetchConfig(max_retries=0))
        async with HttpClient(config) as client:
            with aioresponses() as m:
                m.get(URL, status=500, body="", content_type="text/html", repeat=True)

                result = await client.fetch(URL)

                assert request_count(m) == 1

        assert result.status is PageStatus.FAILED
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, http_client):
        with aioresponses() as m:
            m.get(URL, exception=asyncio.TimeoutError(), repeat=True)
            # Long backoff so the task is parked in asyncio.sleep when cancelled.
            http_client.fetch_config = FetchConfig(backoff_base=30.0, backoff_max=30.0)

            task = asyncio.create_task(http_client.fetch(URL))
            await asyncio.sleep(0.05)
            task.cancel()

            with pytest.raises(asyncio.CancelledError):
                await task

        assert http_client.get_stats()["in_flight_requests"] == 0


@pytest.mark.unit
class TestBackoffDelay:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("attempt,base", [(0, 1.0), (1, 2.0), (2, 4.0), (5, 4.0)])
    async def test_delay_within_jitter_bounds(self, attempt, base):
        client = HttpClient(ResearchConfig())
        for _ in range(20):
            delay = await client._calculate_backoff_delay(attempt)
            assert base * 0.5 <= delay <= base * 1.5

    @pytest.mark.asyncio
    async def test_deterministic_jitter(self, deterministic_jitter):
        client = HttpClient(ResearchConfig())

        assert await client._calculate_backoff_delay(0) == pytest.approx(1.0)
        assert await client._calculate_backoff_delay(1) == pytest.approx(2.2)
        assert await client._calculate_backoff_delay(2) == pytest.approx(3.6)


@pytest.mark.unit
class TestHttpClientLifecycle:
    @pytest.mark.asyncio
    async def test_fetch_once_requires_initialize(self, test_config):
        client = HttpClient(test_config)

        with pytest.raises(RuntimeError, match="not initialized"):
            await client.fetch_once(URL)

    @pytest.mark.asyncio
    async def test_injected_session_is_not_closed(self, test_config):
        async with aiohttp.ClientSession() as session:
            client = HttpClient(test_config, session=session)
            with aioresponses() as m:
                m.get(URL, status=200, body=HTML, content_type="text/html")

                result = await client.fetch(URL)

            await client.close()

            assert result.status is PageStatus.OK
            assert not session.closed

    @pytest.mark.asyncio
    async def test_context_manager_closes_owned_session(self, test_config):
        async with HttpClient(test_config) as client:
            session = client.session
            assert client.get_stats()["initialized"] is True

        assert session.closed
        assert client.get_stats()["initialized"] is False
