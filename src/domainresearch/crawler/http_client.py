"""
Single-page HTTP fetcher with a streamed body cap, outcome classification and
jittered retry.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import replace
from typing import Optional

import aiohttp
import structlog

from domainresearch.config.config import ResearchConfig
from domainresearch.observability.metrics import METRICS
from domainresearch.protocols import PageResult, PageStatus

logger = structlog.get_logger(__name__)

BLOCKED_STATUSES = frozenset({403, 429})
HTML_CONTENT_TYPES = ("text/html", "application/xhtml")
CHUNK_SIZE = 64 * 1024


def _elapsed_ms(start: float) -> int:
    return max(0, int((time.monotonic() - start) * 1000))


class HttpClient:
    """Fetches candidate pages one URL at a time.

    Network errors never escape ``fetch``/``fetch_once``: every outcome is
    returned as a ``PageResult``. Cancellation always propagates so a job
    deadline aborts in-flight requests.
    """

    def __init__(self, config: Optional[ResearchConfig] = None, *, session: Optional[aiohttp.ClientSession] = None):
        self.config = config or ResearchConfig()
        self.fetch_config = self.config.fetch

        self.session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None
        self._is_initialized = session is not None

        self._headers = {
            "User-Agent": self.fetch_config.user_agent,
            "Accept": self.fetch_config.accept,
            "Accept-Language": "en-US,en;q=0.9",
        }
        self._in_flight_requests = 0

        logger.debug(
            "HTTP client created",
            timeout=self.fetch_config.timeout,
            max_body_bytes=self.fetch_config.max_body_bytes,
            max_retries=self.fetch_config.max_retries,
        )

    async def initialize(self) -> None:
        """Initialize the HTTP client session."""
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.fetch_config.timeout)
            self.session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
            logger.debug("HTTP client session initialized")
        self._is_initialized = True

    async def close(self) -> None:
        """Close the session if this client created it."""
        if self.session is not None and self._owns_session:
            await self.session.close()
        self.session = None
        self._is_initialized = False
        logger.debug("HTTP client closed")

    async def __aenter__(self) -> "HttpClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _calculate_backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with +/-50% jitter: ~1s, ~2s, then capped at ~4s."""
        base_delay = min(self.fetch_config.backoff_base * 2**attempt, self.fetch_config.backoff_max)
        jitter = random.uniform(0.5, 1.5)
        return base_delay * jitter

    async def fetch(self, url: str) -> PageResult:
        """
        Fetch URL, retrying ``failed`` and ``timeout`` outcomes.

        ``ok``, ``blocked`` and ``too_large`` are deterministic and returned
        immediately. The returned page carries the number of attempts made and
        the total time spent, backoff included.
        """
        start = time.monotonic()
        max_retries = self.fetch_config.max_retries

        self._in_flight_requests += 1
        METRICS["fetch_in_flight"].inc()
        try:
            attempt = 0
            while True:
                result = await self.fetch_once(url)
                attempt += 1

                if not result.status.is_retryable or attempt > max_retries:
                    break

                delay = await self._calculate_backoff_delay(attempt - 1)
                logger.info(
                    "Retrying page fetch",
                    url=url,
                    status=result.status.value,
                    error=result.error,
                    attempt=attempt,
                    max_retries=max_retries,
                    delay=round(delay, 3),
                )
                await asyncio.sleep(delay)
        finally:
            self._in_flight_requests -= 1
            METRICS["fetch_in_flight"].dec()

        final = replace(result, attempts=attempt, duration_ms=_elapsed_ms(start))

        METRICS["fetch_outcomes_total"].labels(status=final.status.value).inc()
        METRICS["fetch_duration_seconds"].observe(final.duration_ms / 1000)
        log = logger.info if final.is_ok else logger.warning
        log(
            "Page fetched",
            url=url,
            status=final.status.value,
            attempts=final.attempts,
            duration_ms=final.duration_ms,
            error=final.error,
        )
        return final

    async def fetch_once(self, url: str) -> PageResult:
        """Perform a single GET and classify its outcome."""
        if not self._is_initialized or self.session is None:
            raise RuntimeError("HTTP client not initialized. Call initialize() first.")

        start = time.monotonic()
        timeout = self.fetch_config.timeout
        METRICS["fetch_attempts_total"].inc()

        try:
            async with asyncio.timeout(timeout):
                async with self.session.get(url, headers=self._headers, allow_redirects=True) as response:
                    return await self._read_response(url, response, start)
        except asyncio.TimeoutError:
            return PageResult(
                url=url,
                status=PageStatus.TIMEOUT,
                duration_ms=_elapsed_ms(start),
                error=f"Request timed out after {timeout}s",
            )
        except (aiohttp.ClientError, OSError, ValueError) as e:
            logger.debug("Request failed", url=url, error_type=type(e).__name__, error=str(e))
            return PageResult(
                url=url,
                status=PageStatus.FAILED,
                duration_ms=_elapsed_ms(start),
                error=f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
            )
        except Exception as e:
            logger.warning("Unexpected error fetching page", url=url, error_type=type(e).__name__, error=str(e))
            return PageResult(
                url=url,
                status=PageStatus.FAILED,
                duration_ms=_elapsed_ms(start),
                error=f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
            )

    async def _read_response(self, url: str, response: aiohttp.ClientResponse, start: float) -> PageResult:
        status = response.status
        final_url = str(response.url)

        if status in BLOCKED_STATUSES:
            return PageResult(
                url=url,
                status=PageStatus.BLOCKED,
                duration_ms=_elapsed_ms(start),
                error=f"HTTP {status}",
                http_status=status,
                final_url=final_url,
            )

        if not 200 <= status < 300:
            return PageResult(
                url=url,
                status=PageStatus.FAILED,
                duration_ms=_elapsed_ms(start),
                error=f"HTTP {status}",
                http_status=status,
                final_url=final_url,
            )

        content_type = (response.headers.get("Content-Type") or "").lower()
        if not any(html_type in content_type for html_type in HTML_CONTENT_TYPES):
            return PageResult(
                url=url,
                status=PageStatus.FAILED,
                duration_ms=_elapsed_ms(start),
                error=f"Non-HTML content-type: {content_type or 'missing'}",
                http_status=status,
                final_url=final_url,
            )

        max_bytes = self.fetch_config.max_body_bytes
        chunks: list[bytes] = []
        total_bytes = 0
        async for chunk in response.content.iter_chunked(CHUNK_SIZE):
            total_bytes += len(chunk)
            if total_bytes > max_bytes:
                response.close()
                return PageResult(
                    url=url,
                    status=PageStatus.TOO_LARGE,
                    duration_ms=_elapsed_ms(start),
                    error=f"Body exceeded {max_bytes} bytes",
                    http_status=status,
                    final_url=final_url,
                )
            chunks.append(chunk)

        html = self._decode(b"".join(chunks), response.charset)
        return PageResult(
            url=url,
            status=PageStatus.OK,
            duration_ms=_elapsed_ms(start),
            html=html,
            http_status=status,
            final_url=final_url,
        )

    @staticmethod
    def _decode(body: bytes, charset: Optional[str]) -> str:
        try:
            return body.decode(charset or "utf-8", errors="replace")
        except LookupError:
            return body.decode("utf-8", errors="replace")

    def get_stats(self) -> dict:
        """Get current client statistics."""
        return {
            "in_flight_requests": self._in_flight_requests,
            "initialized": self._is_initialized,
        }
