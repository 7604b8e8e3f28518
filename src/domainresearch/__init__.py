"""
domain-research - bounded, time-boxed web reconnaissance for one domain.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import ResearchConfig
from .pipeline import ResearchJob, run_research_job
from .protocols import (
    AggregatedSignals,
    JobState,
    PageResult,
    PageSignals,
    PageStatus,
    ResearchInput,
    ResearchResult,
    ResearchStatus,
)

__all__ = [
    "__version__",
    "AggregatedSignals",
    "JobState",
    "PageResult",
    "PageSignals",
    "PageStatus",
    "ResearchConfig",
    "ResearchInput",
    "ResearchJob",
    "ResearchResult",
    "ResearchStatus",
    "run_research_job",
]
