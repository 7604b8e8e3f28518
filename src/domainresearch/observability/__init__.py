"""Structured logging and Prometheus metrics for research jobs."""

from __future__ import annotations

from .logging import configure_logging
from .metrics import METRICS, export_prometheus, increment, observe

__all__ = ["configure_logging", "METRICS", "export_prometheus", "increment", "observe"]
