"""
Bounded fetch orchestration: a fixed pool of workers draining an ordered URL
queue under attempt and success budgets.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence

import structlog

from domainresearch.config.config import PoolConfig
from domainresearch.protocols import PageFetcher, PageResult

logger = structlog.get_logger(__name__)


@dataclass
class FetchBudget:
    """Per-call bookkeeping shared by the pool's workers."""

    max_successful: int
    max_attempts: int
    attempts: int = 0
    successes: int = 0
    in_flight: int = 0
    peak_in_flight: int = 0

    @property
    def successes_reached(self) -> bool:
        return self.successes >= self.max_successful

    @property
    def exhausted(self) -> bool:
        return self.successes_reached or self.attempts >= self.max_attempts


class FetchPool:
    """
    Runs page fetches for one job with at most ``max_concurrent`` in flight.

    URLs are dispatched strictly in list order. After every completed fetch
    the budget is re-checked under a lock before the worker takes the next
    URL, so completion bookkeeping and dispatch decisions never interleave.
    Once enough pages succeed, fetches still in flight are cancelled and
    contribute no result.
    """

    def __init__(self, fetcher: PageFetcher, config: Optional[PoolConfig] = None):
        self.fetcher = fetcher
        self.config = config or PoolConfig()
        self.peak_in_flight = 0

    async def fetch_many(
        self,
        urls: Sequence[str],
        max_concurrent: Optional[int] = None,
        max_successful: Optional[int] = None,
        max_attempts: Optional[int] = None,
        results: Optional[List[PageResult]] = None,
    ) -> List[PageResult]:
        """
        Fetch ``urls`` front-to-back under the pool limits.

        Args:
            urls: Candidate URLs in priority order
            max_concurrent: Workers running at once (default from config)
            max_successful: Stop dispatching after this many ``ok`` pages
            max_attempts: Never dispatch more than this many fetches
            results: Optional list to append outcomes to as they complete

        Returns:
            Every recorded ``PageResult`` in completion order
        """
        max_concurrent = max_concurrent or self.config.max_concurrent
        budget = FetchBudget(
            max_successful=max_successful or self.config.max_successful,
            max_attempts=max_attempts or self.config.max_attempts,
        )
        results = results if results is not None else []

        queue: asyncio.Queue[str] = asyncio.Queue()
        for url in urls:
            queue.put_nowait(url)

        lock = asyncio.Lock()
        workers: List[asyncio.Task[None]] = []

        async def worker(name: str) -> None:
            while True:
                async with lock:
                    if budget.exhausted or queue.empty():
                        return
                    url = queue.get_nowait()
                    budget.attempts += 1
                    budget.in_flight += 1
                    budget.peak_in_flight = max(budget.peak_in_flight, budget.in_flight)
                    logger.debug("Dispatching fetch", worker=name, url=url, attempt=budget.attempts)

                try:
                    result = await self.fetcher.fetch(url)
                finally:
                    budget.in_flight -= 1

                async with lock:
                    if budget.successes_reached:
                        # Finished after the success budget was met by a sibling.
                        return
                    results.append(result)
                    if result.is_ok:
                        budget.successes += 1
                    if budget.successes_reached:
                        logger.debug("Success budget reached, cancelling in-flight fetches", successes=budget.successes)
                        current = asyncio.current_task()
                        for task in workers:
                            if task is not current:
                                task.cancel()
                        return

        workers.extend(asyncio.create_task(worker(f"fetch-worker-{i}")) for i in range(max_concurrent))
        try:
            await asyncio.gather(*workers, return_exceptions=True)
        except asyncio.CancelledError:
            for task in workers:
                task.cancel()
            raise
        finally:
            self.peak_in_flight = budget.peak_in_flight

        # Worker failures other than sibling cancellation are bugs in the fetcher.
        for task in workers:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()  # type: ignore[misc]

        logger.info(
            "Fetch pool finished",
            attempts=budget.attempts,
            successes=budget.successes,
            recorded=len(results),
            peak_in_flight=budget.peak_in_flight,
        )
        return results
