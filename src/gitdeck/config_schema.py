"""Configuration schema for gitdeck.

Defines all configuration options with types, defaults, and validation.
Uses Pydantic for schema enforcement and clear error messages.
"""

from __future__ import annotations

import shutil
import warnings
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class CacheConfig(BaseModel):
    """Branch cache settings."""

    ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Age up to which a cached listing is served without refresh",
    )
    max_retention_seconds: float = Field(
        default=900.0,
        gt=0,
        description="Age after which the periodic sweep drops an entry",
    )
    sweep_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Interval between housekeeping sweeps",
    )
    max_repositories: int = Field(
        default=50,
        ge=1,
        description="Repositories kept in the cache before least-recently-used eviction",
    )

    @model_validator(mode="after")
    def check_retention(self) -> "CacheConfig":
        if self.max_retention_seconds < self.ttl_seconds:
            raise ValueError(
                "max_retention_seconds must be greater than or equal to ttl_seconds"
            )
        return self


class PerformanceConfig(BaseModel):
    """Performance monitor settings."""

    max_history: int = Field(
        default=100,
        ge=1,
        description="Samples kept per operation name",
    )
    report_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Interval between periodic performance reports in the log",
    )
    recommendation_slow_ratio: float = Field(
        default=0.2,
        ge=0,
        le=1,
        description="Share of samples over target that triggers a recommendation",
    )
    recommendation_avg_factor: float = Field(
        default=1.5,
        ge=1,
        description="Average/target ratio that triggers a recommendation",
    )


class GitConfig(BaseModel):
    """Command-line git settings."""

    binary: str = Field(
        default="git",
        description="git executable used by the command-line adapter",
    )
    command_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Timeout for a single git command",
    )
    enable_cli_fallback: bool = Field(
        default=True,
        description="Use the command-line adapter for capabilities the host provider lacks",
    )
    include_untracked_in_stash: bool = Field(
        default=True,
        description="Include untracked files when stashing",
    )

    @field_validator("binary")
    @classmethod
    def validate_binary(cls, v: str) -> str:
        """Warn if the git binary cannot be found (checked again on use)."""
        if v and shutil.which(v) is None:
            warnings.warn(f"git binary not found on PATH: {v}", UserWarning)
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )
    dir: str = Field(
        default="",
        description="Log directory (empty = ~/.gitdeck/logs)",
    )
    max_bytes: int = Field(
        default=10485760,  # 10MB
        ge=0,
        description="Maximum log file size in bytes",
    )
    backup_count: int = Field(
        default=5,
        ge=0,
        description="Number of backup log files to keep",
    )
    disable_file: bool = Field(
        default=False,
        description="Disable file logging (stderr only)",
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("dir")
    @classmethod
    def validate_log_dir(cls, v: str) -> str:
        """Warn if log path is not a directory (will be created on use)."""
        if v:
            path = Path(v).expanduser()
            if path.exists() and not path.is_dir():
                warnings.warn(
                    f"Log path exists but is not a directory: {v}",
                    UserWarning,
                )
        return v


class GitdeckConfig(BaseModel):
    """Root configuration model."""

    version: int = Field(
        default=1,
        ge=1,
        description="Config schema version",
    )

    cache: CacheConfig = Field(default_factory=CacheConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> "GitdeckConfig":
        """Create config with all defaults."""
        return cls()
