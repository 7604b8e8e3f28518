"""
Test configuration for domain-research.

Fixtures here keep every test offline and fast: backoff delays are scaled
down, jitter is deterministic and fetchers can be swapped for scripted stubs.
"""

# Standard library imports
import asyncio
from typing import AsyncGenerator, Dict, List, Optional

# Third-party imports
import pytest
import pytest_asyncio

# Local imports
from domainresearch.config import FetchConfig, JobConfig, PoolConfig, ResearchConfig
from domainresearch.crawler.http_client import HttpClient
from domainresearch.protocols import PageResult, PageStatus

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across modules")
    config.addinivalue_line("markers", "slow: Tests that take >10 seconds")


@pytest_asyncio.fixture(autouse=True)
async def cleanup_tasks() -> AsyncGenerator[None, None]:
    """Cancel any task a test leaves behind so one hang cannot leak into the next test."""
    tasks_before = asyncio.all_tasks()
    yield
    new_tasks = asyncio.all_tasks() - tasks_before

    for task in new_tasks:
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


# ============================================================================
# Sample HTML
# ============================================================================


@pytest.fixture
def sample_html() -> str:
    """A small but realistic company home page."""
    return """
    <!DOCTYPE html>
    <html>
    <head>
        <title>Acme Corp - Industrial Widgets</title>
        <meta name="description" content="Acme builds industrial widgets for factories worldwide.">
        <style>.hero { color: red; }</style>
        <script>var tracking = "ops@tracking.example";</script>
    </head>
    <body>
        <header><a href="/">Acme</a></header>
        <nav><a href="/about">About</a> <a href="/pricing">Pricing</a></nav>
        <h1>Widgets that work</h1>
        <h2>Our products</h2>
        <h2>Our products</h2>
        <h3>Contact us</h3>
        <p>Call (555) 123-4567 or email <a href="mailto:sales@acme.example">sales@acme.example</a>.</p>
        <img src="logo@2x.png" alt="logo">
        <a href="https://www.linkedin.com/company/acme">LinkedIn</a>
        <a href="https://twitter.com/acme">Twitter</a>
        <a href="https://www.linkedin.com/company/acme-other">Other LinkedIn</a>
        <footer>Copyright Acme 555-000-1111</footer>
    </body>
    </html>
    """


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_config() -> ResearchConfig:
    """Default limits with backoff scaled down so retries do not slow the suite."""
    return ResearchConfig(
        fetch=FetchConfig(timeout=2.0, backoff_base=0.01, backoff_max=0.04),
        pool=PoolConfig(),
        job=JobConfig(timeout=10.0),
    )


@pytest_asyncio.fixture
async def http_client(test_config) -> AsyncGenerator[HttpClient, None]:
    """Initialized HTTP client using the fast test configuration."""
    async with HttpClient(test_config) as client:
        yield client


@pytest.fixture
def deterministic_jitter():
    """Make backoff jitter deterministic for testing."""
    from unittest.mock import patch

    jitter_values = [1.0, 1.1, 0.9, 1.05, 0.95]
    jitter_index = 0

    def mock_uniform(a, b):
        nonlocal jitter_index
        value = jitter_values[jitter_index % len(jitter_values)]
        jitter_index += 1
        return value

    with patch("random.uniform", side_effect=mock_uniform):
        yield


# ============================================================================
# Stub Fetchers
# ============================================================================


class ScriptedFetcher:
    """
    In-memory ``PageFetcher`` that answers each URL with a scripted status.

    Each call sleeps for its per-URL delay first; with ``hang`` every call sleeps
    until cancelled. Dispatch order and concurrency are recorded for asserts.
    """

    def __init__(
        self,
        outcomes: Optional[Dict[str, PageStatus]] = None,
        default: PageStatus = PageStatus.OK,
        delay: float = 0.0,
        delays: Optional[Dict[str, float]] = None,
        hang: bool = False,
        html: str = "<html><head><title>Stub</title></head><body><h1>Stub page</h1></body></html>",
    ):
        self.outcomes = outcomes or {}
        self.default = default
        self.delay = delay
        self.delays = delays or {}
        self.hang = hang
        self.html = html

        self.calls: List[str] = []
        self.completed: List[str] = []
        self.cancelled: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def fetch(self, url: str) -> PageResult:
        self.calls.append(url)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.hang:
                await asyncio.Event().wait()
            await asyncio.sleep(self.delays.get(url, self.delay))
        except asyncio.CancelledError:
            self.cancelled.append(url)
            raise
        finally:
            self.in_flight -= 1

        self.completed.append(url)
        status = self.outcomes.get(url, self.default)
        if status is PageStatus.OK:
            return PageResult(url=url, status=status, duration_ms=1, html=self.html, http_status=200)
        return PageResult(url=url, status=status, duration_ms=1, error=f"scripted {status.value}")


@pytest.fixture
def scripted_fetcher():
    """Factory for ``ScriptedFetcher`` instances."""
    return ScriptedFetcher
