# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for CohortLens.
Settings are loaded from environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from cohortlens.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> settings.scoring.stagnation_days
    14
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Repository root: cohortlens/core/config/settings.py -> parents[3]
_PROJECT_ROOT = Path(__file__).resolve().parents[3]


class DatabaseSettings(BaseSettings):
    """Relational store configuration.

    All tenants share one database; every table carries a tenant_id column
    and every query is scoped by it.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "cohortlens"
    password: SecretStr = SecretStr("cohortlens_password")
    host: str = "localhost"
    port: int = 5432
    database: str = "cohortlens"
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class RedisSettings(BaseSettings):
    """Redis configuration for the Dramatiq message broker.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Redis database number.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 6379
    password: SecretStr = SecretStr("")
    database: int = 0

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        pwd = self.password.get_secret_value()
        auth = f":{pwd}@" if pwd else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.database}"


class ScoringSettings(BaseSettings):
    """Heuristic thresholds for the engagement scorers.

    Tier lists are ``(threshold, points)`` pairs checked in order; the first
    pair whose threshold is met wins.

    Attributes:
        high_band_min: Lowest score counted as "high".
        medium_band_min: Lowest score counted as "medium".
        commitment_window_days: Days after student creation that count.
        time_to_first_tiers: Hours-to-first-event upper bounds and points.
        time_to_first_fallback_points: Points when the first event is later.
        frequency_tiers: Active-day minimums and points.
        exploration_tiers: Distinct-experience minimums and points.
        slow_start_below: Time points under which "slow start" is flagged.
        low_frequency_below: Frequency points under which a risk is flagged.
        narrow_exploration_below: Exploration points under which a risk is flagged.
        min_activity_events: Event count under which "very few" is flagged.
        max_gap_hours: Longest tolerated gap between consecutive events.
        at_risk_limit: Number of at-risk students persisted.
        consistency_weeks: Weekly windows considered.
        consistency_student_limit: Number of per-student rows persisted.
        min_experience_events: Events an experience needs to be analysed.
        spike_window_days: Days before/after the first touch compared.
        top_experiences_limit: Number of experiences persisted.
        stagnation_days: Inactivity (strictly greater) that marks stagnation.
        stagnant_list_limit: Number of stagnant students persisted.
        pathway_min_attempts: Occurrences a sequence needs to be ranked.
        top_pathways_limit: Number of pathways persisted.
        dead_end_min_students: Students an experience needs to be a dead end.
        dead_end_drop_off_pct: Drop-off percentage a dead end must exceed.
        dead_end_limit: Number of dead ends persisted.
        power_min_frequency: Students a pair needs to be considered.
        power_success_pct: Success percentage a pair must exceed.
        power_combination_limit: Number of combinations persisted.
        popular_content_limit: Number of popular items persisted.
        feedback_window_days: Look-back for submissions and insights.
        feedback_min_submissions: Submissions needed before themes are shown.
        feedback_insight_limit: Most recent insights considered.
        feedback_theme_limit: Number of themes persisted.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCORING_",
        extra="ignore",
    )

    high_band_min: float = 70
    medium_band_min: float = 40

    # Commitment
    commitment_window_days: int = 7
    time_to_first_tiers: list[tuple[float, int]] = [(6, 40), (24, 30), (48, 20)]
    time_to_first_fallback_points: int = 10
    frequency_tiers: list[tuple[int, int]] = [(7, 35), (5, 25), (3, 15), (1, 5)]
    exploration_tiers: list[tuple[int, int]] = [(5, 25), (3, 18), (2, 10), (1, 5)]
    slow_start_below: int = 20
    low_frequency_below: int = 15
    narrow_exploration_below: int = 10
    min_activity_events: int = 3
    max_gap_hours: float = 48
    at_risk_limit: int = 20

    # Consistency
    consistency_weeks: int = 8
    consistency_student_limit: int = 100

    # Aha moments
    min_experience_events: int = 5
    spike_window_days: int = 7
    top_experiences_limit: int = 5
    stagnation_days: int = 14
    stagnant_list_limit: int = 20

    # Content pathways
    pathway_min_attempts: int = 3
    top_pathways_limit: int = 3
    dead_end_min_students: int = 3
    dead_end_drop_off_pct: float = 50
    dead_end_limit: int = 10
    power_min_frequency: int = 5
    power_success_pct: float = 80
    power_combination_limit: int = 5

    # Popular content
    popular_content_limit: int = 10

    # Feedback themes
    feedback_window_days: int = 7
    feedback_min_submissions: int = 5
    feedback_insight_limit: int = 20
    feedback_theme_limit: int = 5

    @model_validator(mode="after")
    def validate_commitment_weights(self) -> Self:
        """Ensure the commitment components add up to 100 points.

        Raises:
            ValueError: If the best-case points do not sum to 100 or the
                band boundaries are inverted.
        """
        best = (
            max(points for _, points in self.time_to_first_tiers)
            + max(points for _, points in self.frequency_tiers)
            + max(points for _, points in self.exploration_tiers)
        )
        if best != 100:
            raise ValueError(
                f"Commitment tier points must sum to 100 at best, got {best}"
            )
        if self.medium_band_min >= self.high_band_min:
            raise ValueError("medium_band_min must be lower than high_band_min")
        return self


class RefreshSettings(BaseSettings):
    """Metrics refresh configuration.

    Attributes:
        tiers_path: YAML file assigning metric types to refresh tiers.
        max_concurrency: Tenants refreshed in parallel per invocation.
        stats_capacity: Outcomes retained by the per-run stats collector.
        scheduler_enabled: Whether the in-process scheduler registers jobs.
    """

    model_config = SettingsConfigDict(
        env_prefix="REFRESH_",
        extra="ignore",
    )

    tiers_path: Path = _PROJECT_ROOT / "config" / "refresh_tiers.yaml"
    max_concurrency: int = Field(default=4, ge=1)
    stats_capacity: int = Field(default=500, ge=1)
    scheduler_enabled: bool = True


class WorkerSettings(BaseSettings):
    """Background worker configuration.

    Attributes:
        test_mode: Use Dramatiq's in-memory stub broker.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        extra="ignore",
    )

    test_mode: bool = Field(default=False, validation_alias="DRAMATIQ_TEST_MODE")


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        db: Database settings.
        redis: Redis settings.
        scoring: Scoring thresholds.
        refresh: Refresh scheduling settings.
        worker: Background worker settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    refresh: RefreshSettings = Field(default_factory=RefreshSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with the default password.
        """
        if self.environment == "production":
            if self.db.password.get_secret_value() == "cohortlens_password":
                raise ValueError(
                    "Database password must be changed from default in production. "
                    "Set DB_PASSWORD environment variable."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
