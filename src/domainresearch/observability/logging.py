"""
Structured logging for research jobs.

Every record, whether emitted through structlog or a stdlib logger such as
``aiohttp.client``, goes through the same processor chain: job context from
``ResearchJob.run``, logger name and level, ISO timestamp, and a length bound on
values that may carry scraped page content.
"""
from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any, Dict, List, Tuple

import structlog

if TYPE_CHECKING:
    from domainresearch.config.config import LoggingConfig

JOB_CONTEXT_KEYS = ("job_id", "domain")
MAX_VALUE_LENGTH = 500

# --- Custom Processors ---


def add_job_context(logger: logging.Logger, method_name: str, event_dict: Dict[Any, Any]) -> Dict[Any, Any]:
    """
    Copies the research job identifiers bound by ``ResearchJob.run`` onto
    every record, including records emitted by third-party stdlib loggers.
    """
    from structlog.contextvars import get_contextvars

    ctx = get_contextvars()
    for key in JOB_CONTEXT_KEYS:
        if key in ctx and key not in event_dict:
            event_dict[key] = ctx[key]
    return event_dict


def truncate_long_values(logger: logging.Logger, method_name: str, event_dict: Dict[Any, Any]) -> Dict[Any, Any]:
    """Bound string fields so error texts quoting page bodies stay readable."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > MAX_VALUE_LENGTH:
            event_dict[key] = f"{value[:MAX_VALUE_LENGTH]}... [{len(value) - MAX_VALUE_LENGTH} chars truncated]"
    return event_dict


# --- Configuration ---


def _handler_and_renderer(config: LoggingConfig) -> Tuple[logging.Handler, Any]:
    if config.log_file:
        return logging.FileHandler(config.log_file), structlog.processors.JSONRenderer()
    if config.json_logs:
        return logging.StreamHandler(sys.stdout), structlog.processors.JSONRenderer()
    return logging.StreamHandler(sys.stdout), structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(config: LoggingConfig) -> None:
    """
    Route structlog and stdlib logging through one handler.

    Files always get JSON lines; the console gets JSON when ``json_logs`` is
    set and the development renderer otherwise.
    """
    shared_processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        add_job_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        truncate_long_values,
    ]

    handler, renderer = _handler_and_renderer(config)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
        existing.close()
    root.addHandler(handler)
    root.setLevel(config.log_level)

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=config.log_level,
        output=config.log_file or "console",
        renderer=type(renderer).__name__,
    )
