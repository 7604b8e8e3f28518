"""
Defines Prometheus metrics for research jobs and page fetches.
"""

from __future__ import annotations

from typing import Any, Dict

from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Gauge as _OrigGauge
from prometheus_client import Histogram as _OrigHistogram

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# Re-importing this module (test reloads, multiple interpreters embedding the
# library) must not fail with "Duplicated timeseries in CollectorRegistry".


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[override]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing  # type: ignore[return-value]

        try:
            return metric_cls(name, documentation, *args, **kwargs)  # type: ignore[call-arg]
        except ValueError:
            # Registration lost the race, fall back to the now-existing collector.
            return _PROM_REGISTRY._names_to_collectors[name]  # type: ignore[return-value]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)  # type: ignore[assignment]
Gauge = _duplicate_safe_factory(_OrigGauge)  # type: ignore[assignment]
Histogram = _duplicate_safe_factory(_OrigHistogram)  # type: ignore[assignment]


def _create_metrics() -> Dict[str, Any]:
    return {
        "fetch_outcomes_total": Counter(
            "domain_research_fetch_outcomes_total",
            "Final outcome of each candidate page fetch",
            ["status"],
        ),
        "fetch_attempts_total": Counter(
            "domain_research_fetch_attempts_total",
            "Individual HTTP attempts, retries included",
        ),
        "fetch_duration_seconds": Histogram(
            "domain_research_fetch_duration_seconds",
            "Time spent fetching one candidate page, retries included",
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0),
        ),
        "fetch_in_flight": Gauge(
            "domain_research_fetch_in_flight",
            "Page fetches currently running",
        ),
        "jobs_total": Counter(
            "domain_research_jobs_total",
            "Research jobs by final status",
            ["status"],
        ),
        "job_duration_seconds": Histogram(
            "domain_research_job_duration_seconds",
            "Wall-clock duration of research jobs",
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 20.0, 30.0, 45.0),
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()


def increment(name: str, value: float = 1.0, labels: Dict[str, Any] | None = None) -> None:
    """Increment a counter metric."""
    if name in METRICS:
        metric = METRICS[name]
        if labels is not None:
            metric.labels(**labels).inc(value)
        else:
            metric.inc(value)


def observe(name: str, value: float, labels: Dict[str, Any] | None = None) -> None:
    """Observe a histogram metric."""
    if name in METRICS:
        metric = METRICS[name]
        if labels is not None:
            metric.labels(**labels).observe(value)
        else:
            metric.observe(value)


def export_prometheus() -> str:
    """Export metrics in Prometheus text format."""
    from prometheus_client import generate_latest

    return generate_latest().decode("utf-8")
