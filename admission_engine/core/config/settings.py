# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Engine configuration settings using Pydantic Settings.

This module provides centralized configuration management for the
admission engine. Settings are loaded from environment variables with
sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from admission_engine.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.policy_defaults.default_capacity)
    30
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database configuration for the SQLAlchemy store adapters.

    The database holds class policies, prerequisite and restriction rules,
    occupancy counters, enrollment and waitlist rows, and the audit log.

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
        env_prefix="ENGINE_DB_",
        extra="ignore",
    )

    user: str = "enrollment"
    password: SecretStr = SecretStr("enrollment_password")
    host: str = "localhost"
    port: int = 5432
    database: str = "enrollment"
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class PolicyDefaultsSettings(BaseSettings):
    """Defaults applied to policy fields a class has never set.

    Attributes:
        default_capacity: Seat capacity for classes without one.
        default_waitlist_capacity: Waitlist size for classes without one.
        default_allow_waitlist: Whether waitlisting is on by default.
    """

    model_config = SettingsConfigDict(
        env_prefix="POLICY_",
        extra="ignore",
    )

    default_capacity: int = Field(default=30, ge=1)
    default_waitlist_capacity: int = Field(default=10, ge=0)
    default_allow_waitlist: bool = True


class AdmissionSettings(BaseSettings):
    """Admission controller configuration.

    Attributes:
        decision_timeout_seconds: Upper bound on one atomic admission unit.
            A timeout leaves the outcome unknown; callers re-query status.
        max_promotions_per_call: Upper bound on seats filled by a single
            promote_waitlist call.
    """

    model_config = SettingsConfigDict(
        env_prefix="ADMISSION_",
        extra="ignore",
    )

    decision_timeout_seconds: float = Field(default=5.0, gt=0)
    max_promotions_per_call: int = Field(default=50, ge=1)


class Settings(BaseSettings):
    """Main engine settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        database: Database settings.
        policy_defaults: Policy default values.
        admission: Admission controller settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    policy_defaults: PolicyDefaultsSettings = Field(default_factory=PolicyDefaultsSettings)
    admission: AdmissionSettings = Field(default_factory=AdmissionSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with debug enabled.
        """
        if self.environment == "production" and self.debug:
            raise ValueError(
                "Debug mode must be disabled in production. "
                "Set DEBUG=false environment variable."
            )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


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
    Useful for testing.
    """
    get_settings.cache_clear()
