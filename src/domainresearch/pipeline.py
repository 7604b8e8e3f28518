"""
Research job orchestration: candidate URLs -> bounded fetch -> extraction ->
aggregation, all under one hard deadline.
"""

from __future__ import annotations

import asyncio
import time
from typing import Dict, FrozenSet, List, Optional, Union
from uuid import uuid4

import structlog

from domainresearch.config.config import ResearchConfig
from domainresearch.crawler.candidates import build_urls
from domainresearch.crawler.fetch_pool import FetchPool
from domainresearch.crawler.http_client import HttpClient
from domainresearch.extractor.aggregator import aggregate_signals
from domainresearch.extractor.signals import extract_signals
from domainresearch.observability.metrics import increment, observe
from domainresearch.protocols import (
    AggregatedSignals,
    JobState,
    PageFetcher,
    PageResult,
    ResearchInput,
    ResearchResult,
    ResearchStatus,
    normalize_domain,
)

logger = structlog.get_logger(__name__)

NO_PAGES_ERROR = "No pages fetched successfully"


class ResearchError(Exception):
    """Base class for programming errors inside the research pipeline."""


class InvalidStateTransition(ResearchError):
    def __init__(self, current: JobState, target: JobState):
        super().__init__(f"Invalid job state transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


_FORWARD_TRANSITIONS: Dict[JobState, FrozenSet[JobState]] = {
    JobState.INIT: frozenset({JobState.FETCHING}),
    JobState.FETCHING: frozenset({JobState.EXTRACTING}),
    JobState.EXTRACTING: frozenset({JobState.AGGREGATING}),
    JobState.AGGREGATING: frozenset({JobState.DONE}),
}


def _elapsed_ms(start: float) -> int:
    return max(0, int((time.monotonic() - start) * 1000))


class ResearchJob:
    """
    Drives one domain through the research state machine.

    ``run`` always returns a fully formed ``ResearchResult``: zero successful
    pages, the job deadline and unexpected errors are reported through
    ``status`` and ``error`` rather than raised.
    """

    def __init__(
        self,
        research_input: ResearchInput,
        config: Optional[ResearchConfig] = None,
        client: Optional[PageFetcher] = None,
    ) -> None:
        self.input = research_input
        self.config = config or ResearchConfig()
        self.client = client
        self.job_id = str(uuid4())
        self.logger = structlog.get_logger(self.__class__.__name__)

        self.state = JobState.INIT
        self.history: List[JobState] = [JobState.INIT]
        self.urls: List[str] = []
        # Completed fetches in completion order, kept for timeout diagnostics.
        self._fetched: List[PageResult] = []

    def _transition(self, target: JobState) -> None:
        if self.state.is_terminal:
            raise InvalidStateTransition(self.state, target)
        if target not in (JobState.FAILED, JobState.TIMED_OUT) and target not in _FORWARD_TRANSITIONS[self.state]:
            raise InvalidStateTransition(self.state, target)

        self.logger.debug("Job state transition", from_state=self.state.value, to_state=target.value)
        self.state = target
        self.history.append(target)

    async def run(self) -> ResearchResult:
        start = time.monotonic()
        timeout = self.config.job.timeout

        with structlog.contextvars.bound_contextvars(job_id=self.job_id, domain=self.input.domain):
            self.logger.info("Research job started", company_name=self.input.company_name, timeout=timeout)
            try:
                async with asyncio.timeout(timeout):
                    result = await self._execute(start)
            except TimeoutError:
                if not self.state.is_terminal:
                    self._transition(JobState.TIMED_OUT)
                result = self._build_result(
                    ResearchStatus.TIMEOUT,
                    start,
                    pages=list(self._fetched),
                    error=f"Job exceeded {timeout}s deadline",
                )
            except Exception as e:
                self.logger.exception("Research job crashed", state=self.state.value)
                if not self.state.is_terminal:
                    self._transition(JobState.FAILED)
                result = self._build_result(
                    ResearchStatus.FAILED,
                    start,
                    pages=list(self._fetched),
                    error=f"{type(e).__name__}: {e}",
                )

            increment("jobs_total", labels={"status": result.status.value})
            observe("job_duration_seconds", result.duration_ms / 1000)
            self.logger.info(
                "Research job finished",
                status=result.status.value,
                state=self.state.value,
                pages=len(result.pages),
                successful_pages=len(result.successful_pages),
                duration_ms=result.duration_ms,
                error=result.error,
            )
            return result

    async def _execute(self, start: float) -> ResearchResult:
        # INIT
        self.urls = build_urls(self.input.domain, self.config.job.candidate_paths)

        self._transition(JobState.FETCHING)
        if self.client is not None:
            await self._fetch(self.client)
        else:
            async with HttpClient(self.config) as client:
                await self._fetch(client)

        pages = list(self._fetched)
        if not any(page.is_ok for page in pages):
            self._transition(JobState.FAILED)
            return self._build_result(ResearchStatus.FAILED, start, pages=pages, error=NO_PAGES_ERROR)

        self._transition(JobState.EXTRACTING)
        pages = await self._extract(pages)

        self._transition(JobState.AGGREGATING)
        signals = aggregate_signals([page.signals for page in pages if page.signals is not None])

        self._transition(JobState.DONE)
        return self._build_result(ResearchStatus.COMPLETED, start, pages=pages, signals=signals)

    async def _fetch(self, client: PageFetcher) -> None:
        pool = FetchPool(client, self.config.pool)
        await pool.fetch_many(self.urls, results=self._fetched)

    async def _extract(self, pages: List[PageResult]) -> List[PageResult]:
        """Attach signals to every ok page. Parsing runs in the default executor."""
        loop = asyncio.get_running_loop()
        extracted: List[PageResult] = []
        for page in pages:
            if page.is_ok and page.html is not None:
                signals = await loop.run_in_executor(None, extract_signals, page.url, page.html)
                page = page.with_signals(signals)
            extracted.append(page)
        return extracted

    def _build_result(
        self,
        status: ResearchStatus,
        start: float,
        *,
        pages: List[PageResult],
        signals: Optional[AggregatedSignals] = None,
        error: Optional[str] = None,
    ) -> ResearchResult:
        return ResearchResult(
            status=status,
            domain=self.input.domain,
            company_name=self.input.company_name,
            pages=pages,
            signals=signals if signals is not None else AggregatedSignals.empty(),
            duration_ms=_elapsed_ms(start),
            error=error,
        )


async def run_research_job(
    research_input: Union[ResearchInput, str],
    config: Optional[ResearchConfig] = None,
    client: Optional[PageFetcher] = None,
) -> ResearchResult:
    """
    Research one domain and return its aggregated profile.

    Args:
        research_input: ``ResearchInput`` or a bare domain string
        config: Limits and timeouts (defaults preserve the fixed pipeline constants)
        client: Optional fetcher to use instead of a job-owned ``HttpClient``

    Returns:
        ResearchResult with status ``completed``, ``failed`` or ``timeout``.
        A domain string that normalizes to nothing yields a ``failed`` result
        without any fetch.
    """
    if isinstance(research_input, str):
        try:
            research_input = ResearchInput(domain=research_input)
        except ValueError as e:
            logger.warning("Rejected research input", raw_domain=research_input, error=str(e))
            increment("jobs_total", labels={"status": ResearchStatus.FAILED.value})
            return ResearchResult(
                status=ResearchStatus.FAILED,
                domain=normalize_domain(research_input),
                pages=[],
                signals=AggregatedSignals.empty(),
                duration_ms=0,
                error=str(e),
            )
    return await ResearchJob(research_input, config=config, client=client).run()
