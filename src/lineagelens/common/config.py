"""Application configuration using Pydantic Settings.

Loads configuration from environment variables and .env files.
Each engine concern has its own settings class with an env prefix.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LineageSettings(BaseSettings):
    """Graph traversal and impact cache configuration."""

    model_config = SettingsConfigDict(env_prefix="LINEAGE_")

    # Traversal depths
    default_max_depth: int = Field(default=5, ge=0, le=100)
    indirect_max_depth: int = Field(default=5, ge=1, le=100)
    visualization_depth: int = Field(default=3, ge=0, le=100)
    max_depth_limit: int = Field(
        default=50, ge=1, le=1000,
        description="Largest depth a caller may request"
    )

    # Impact cache
    impact_cache_ttl_seconds: int = Field(default=3600, ge=1)
    impact_cache_max_entries: int = Field(default=10000, ge=10)

    # Bootstrap
    bootstrap_path: Path | None = None
    warm_cache_on_start: bool = True
    warm_cache_tag: str = "critical"

    @field_validator("max_depth_limit")
    @classmethod
    def validate_depth_limit(cls, v: int, info) -> int:
        """Ensure the depth cap admits the default depth."""
        default = info.data.get("default_max_depth", 5)
        if v < default:
            raise ValueError("max_depth_limit must be >= default_max_depth")
        return v


class ScoringSettings(BaseSettings):
    """Impact scoring policy.

    The weights and thresholds are policy constants. They are kept
    configurable but the defaults must not change without updating
    downstream alerting rules that depend on them.
    """

    model_config = SettingsConfigDict(env_prefix="SCORING_")

    criticality_weights: dict[str, int] = Field(
        default_factory=lambda: {"critical": 10, "high": 7, "medium": 4, "low": 1}
    )
    quality_weights: dict[str, int] = Field(
        default_factory=lambda: {"high": 5, "medium": 3, "low": 1}
    )
    indirect_discount: float = Field(default=0.5, gt=0.0, le=1.0)

    # Criticality levels: high needs score > threshold, medium score >= threshold.
    # Node thresholds are exclusive for both.
    high_score_threshold: float = Field(default=50, ge=0)
    high_node_threshold: int = Field(default=10, ge=0)
    medium_score_threshold: float = Field(default=20, ge=0)
    medium_node_threshold: int = Field(default=5, ge=0)

    # Mitigation rules
    parallel_testing_node_threshold: int = Field(default=5, ge=0)

    @model_validator(mode="after")
    def validate_thresholds(self) -> "ScoringSettings":
        """Ensure high thresholds are not below medium thresholds."""
        if self.high_score_threshold < self.medium_score_threshold:
            raise ValueError("high_score_threshold must be >= medium_score_threshold")
        if self.high_node_threshold < self.medium_node_threshold:
            raise ValueError("high_node_threshold must be >= medium_node_threshold")
        return self


class SchedulerSettings(BaseSettings):
    """Background task configuration."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_")

    enabled: bool = True
    health_check_interval_seconds: float = Field(default=600, gt=0)
    cache_sweep_interval_seconds: float = Field(default=1800, gt=0)
    statistics_interval_seconds: float = Field(default=3600, gt=0)
    error_backoff_seconds: float = Field(default=1.0, ge=0)


class EventSettings(BaseSettings):
    """Event bus configuration."""

    model_config = SettingsConfigDict(env_prefix="EVENTS_")

    channel_max_size: int = Field(default=1000, ge=1)


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "json"
    include_timestamp: bool = True
    include_caller: bool = True


class Settings(BaseSettings):
    """Main application settings aggregating all configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application info
    app_name: str = "LineageLens"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Sub-configurations
    lineage: LineageSettings = Field(default_factory=LineageSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    events: EventSettings = Field(default_factory=EventSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
