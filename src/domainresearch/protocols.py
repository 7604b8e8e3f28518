"""
Core dataclasses and enums for domain research jobs.

Every value produced by the pipeline is immutable once created: pages are
appended to a job's result list and replaced (never edited) when signals are
attached during extraction.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

# ============================================================================
# Enums
# ============================================================================


class PageStatus(Enum):
    """Outcome classification of a single page fetch."""

    OK = "ok"
    FAILED = "failed"
    TIMEOUT = "timeout"
    BLOCKED = "blocked"
    TOO_LARGE = "too_large"

    @property
    def is_retryable(self) -> bool:
        """Only transient outcomes are worth another attempt."""
        return self in (PageStatus.FAILED, PageStatus.TIMEOUT)


class ResearchStatus(Enum):
    """Final status of a research job."""

    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class JobState(Enum):
    """Internal state of a single research job."""

    INIT = "INIT"
    FETCHING = "FETCHING"
    EXTRACTING = "EXTRACTING"
    AGGREGATING = "AGGREGATING"
    DONE = "DONE"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.DONE, JobState.FAILED, JobState.TIMED_OUT)


# ============================================================================
# Dataclasses
# ============================================================================

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")


def normalize_domain(raw: str) -> str:
    """Reduce user input such as ``https://Example.com/about`` to ``example.com``."""
    value = (raw or "").strip()
    value = _SCHEME_RE.sub("", value)
    value = value.split("/", 1)[0].split("?", 1)[0].split("#", 1)[0]
    value = value.rsplit("@", 1)[-1]
    return value.strip().rstrip(".").lower()


@dataclass(frozen=True)
class ResearchInput:
    """Input of one research job."""

    domain: str
    company_name: Optional[str] = None

    def __post_init__(self) -> None:
        domain = normalize_domain(self.domain)
        if not domain:
            raise ValueError("domain must not be empty")
        object.__setattr__(self, "domain", domain)
        if self.company_name is not None:
            object.__setattr__(self, "company_name", self.company_name.strip() or None)


@dataclass(frozen=True)
class PageSignals:
    """Facts extracted from one HTML document."""

    url: str
    title: str = ""
    meta_description: str = ""
    headings: List[str] = field(default_factory=list)
    cleaned_text: str = ""
    emails: List[str] = field(default_factory=list)
    phones: List[str] = field(default_factory=list)
    social_links: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PageResult:
    """Outcome of fetching (and, when successful, extracting) one candidate URL."""

    url: str
    status: PageStatus
    duration_ms: int
    html: Optional[str] = None
    signals: Optional[PageSignals] = None
    error: Optional[str] = None
    attempts: int = 1
    http_status: Optional[int] = None
    final_url: Optional[str] = None

    def __post_init__(self) -> None:
        if self.status is not PageStatus.OK and (self.html is not None or self.signals is not None):
            raise ValueError("html and signals are only allowed on ok pages")
        if self.duration_ms < 0:
            raise ValueError("duration_ms cannot be negative")

    @property
    def is_ok(self) -> bool:
        return self.status is PageStatus.OK

    def with_signals(self, signals: PageSignals) -> PageResult:
        """Return a copy of this page carrying extracted signals."""
        return replace(self, signals=signals)


@dataclass(frozen=True)
class AggregatedSignals:
    """Domain-level merge of every successful page's signals."""

    title: str = ""
    description: str = ""
    headings: List[str] = field(default_factory=list)
    body_text: str = ""
    emails: List[str] = field(default_factory=list)
    phones: List[str] = field(default_factory=list)
    social_links: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> AggregatedSignals:
        return cls()

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.title, self.description, self.headings, self.body_text, self.emails, self.phones, self.social_links)
        )


@dataclass(frozen=True)
class ResearchResult:
    """Final output of a research job. Failures and timeouts are data, not exceptions."""

    status: ResearchStatus
    domain: str
    pages: List[PageResult]
    signals: AggregatedSignals
    duration_ms: int
    error: Optional[str] = None
    company_name: Optional[str] = None

    @property
    def successful_pages(self) -> List[PageResult]:
        return [page for page in self.pages if page.is_ok]

    def to_dict(self, *, include_html: bool = False) -> Dict[str, Any]:
        """JSON-safe representation for callers that store results."""
        pages: List[Dict[str, Any]] = []
        for page in self.pages:
            data = asdict(page)
            data["status"] = page.status.value
            if not include_html:
                data.pop("html", None)
            pages.append(data)

        return {
            "status": self.status.value,
            "domain": self.domain,
            "company_name": self.company_name,
            "pages": pages,
            "signals": asdict(self.signals),
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


# ============================================================================
# Protocols
# ============================================================================


@runtime_checkable
class PageFetcher(Protocol):
    """Anything that turns a URL into a classified ``PageResult``."""

    async def fetch(self, url: str) -> PageResult:
        """Fetch one URL, retrying transient failures, without raising for network errors."""
        ...
