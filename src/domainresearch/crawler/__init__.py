"""
Crawler subsystem for domain research.

- candidates.py: the fixed, ordered list of candidate URLs per domain
- http_client.py: single-page fetcher (timeout, streamed size cap, jittered retry)
- fetch_pool.py: bounded worker pool with attempt and success budgets
"""

from .candidates import CANDIDATE_PATHS, build_urls
from .fetch_pool import FetchBudget, FetchPool
from .http_client import HttpClient

__all__ = [
    "CANDIDATE_PATHS",
    "build_urls",
    "FetchBudget",
    "FetchPool",
    "HttpClient",
]
