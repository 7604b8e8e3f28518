from .config import FetchConfig, JobConfig, LoggingConfig, PoolConfig, ResearchConfig

__all__ = ["FetchConfig", "JobConfig", "LoggingConfig", "PoolConfig", "ResearchConfig"]
