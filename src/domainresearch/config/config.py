"""
Configuration management for domain research using Pydantic.

Every default matches the fixed limits of the research pipeline; overriding
them through the constructor, ``DOMAIN_RESEARCH_*`` environment variables or a
YAML file is supported but optional.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_CANDIDATE_PATHS = [
    "/about",
    "/about-us",
    "/pricing",
    "/contact",
    "/contact-us",
    "/services",
    "/products",
    "/team",
]

# --- Nested Configuration Models ---


class FetchConfig(BaseModel):
    """Single-page fetcher configuration."""

    timeout: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds.")
    max_body_bytes: int = Field(default=1_572_864, gt=0, description="Streamed body size cap (1.5 MiB).")
    max_retries: int = Field(default=2, ge=0, description="Retries for failed/timeout outcomes.")
    backoff_base: float = Field(default=1.0, ge=0, description="First backoff delay in seconds.")
    backoff_max: float = Field(default=4.0, ge=0, description="Backoff delay ceiling in seconds.")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent sent with every request.")
    accept: str = Field(default="text/html,application/xhtml+xml", description="Accept header.")

    @field_validator("backoff_max")
    @classmethod
    def validate_backoff_max(cls, v: float, info: ValidationInfo) -> float:
        base = info.data.get("backoff_base")
        if base is not None and v < base:
            raise ValueError("backoff_max must be >= backoff_base")
        return v


class PoolConfig(BaseModel):
    """Bounded fetch orchestrator limits."""

    max_concurrent: int = Field(default=2, gt=0, description="Fetches in flight at once.")
    max_successful: int = Field(default=4, gt=0, description="Stop once this many pages succeeded.")
    max_attempts: int = Field(default=6, gt=0, description="Total fetches dispatched per job.")


class JobConfig(BaseModel):
    """Research job configuration."""

    timeout: float = Field(default=30.0, gt=0, description="Hard deadline for the whole job in seconds.")
    candidate_paths: List[str] = Field(
        default_factory=lambda: list(DEFAULT_CANDIDATE_PATHS),
        description="Relative paths probed after the site root, in priority order.",
    )

    @field_validator("candidate_paths")
    @classmethod
    def validate_paths(cls, v: List[str]) -> List[str]:
        for path in v:
            if not path.startswith("/"):
                raise ValueError(f"candidate path must start with '/': {path!r}")
        return v


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: Optional[str] = Field(default=None, description="Path to log file. If None, logs to console.")
    json_logs: bool = Field(default=False, description="Render JSON even when logging to the console.")

    @field_validator("log_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v}")
        return level

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Configuration Class ---


class ResearchConfig(BaseSettings):
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    job: JobConfig = Field(default_factory=JobConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(env_prefix="DOMAIN_RESEARCH_", env_nested_delimiter="__", case_sensitive=False)

    @classmethod
    def from_yaml(cls, path: Path) -> ResearchConfig:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls.model_validate({})
        return cls.model_validate(yaml_data)
