# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Engine configuration using Pydantic Settings."""

import logging

from beartype import beartype
from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Access-control engine settings with immutable configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AUTHZ_",
        env_file=None,
        frozen=True,
        validate_default=True,
        extra="forbid",
    )

    # Policy
    policy_version: str = Field(
        default="2025.09.1",
        min_length=1,
        description="Version stamped on every decision for staleness checks",
    )
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Deployment environment",
    )

    # Decision cache
    decision_cache_enabled: bool = Field(
        default=True,
        description="Enable the short-TTL decision cache",
    )
    decision_cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        le=3600,
        description="Maximum age of a cached decision in seconds",
    )
    decision_cache_max_entries: int = Field(
        default=10_000,
        ge=1,
        description="Upper bound on cached decisions before pruning",
    )

    # MFA
    mfa_code_length: int = Field(
        default=6,
        ge=6,
        le=10,
        description="Digits in SMS/email one-time codes",
    )
    mfa_default_expiry_minutes: int = Field(
        default=10,
        ge=1,
        le=60,
        description="Challenge lifetime for standard actions",
    )
    mfa_critical_expiry_minutes: int = Field(
        default=5,
        ge=1,
        le=60,
        description="Challenge lifetime for critical actions",
    )
    mfa_sensitivity_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Permission sensitivity at or above which step-up is required",
    )

    # Escalation
    emergency_grant_max_ttl_seconds: int = Field(
        default=7 * 24 * 60 * 60,
        ge=60,
        description="Longest lifetime of an emergency investigation grant",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Root log level",
    )

    @field_validator("mfa_critical_expiry_minutes")
    @classmethod
    def validate_critical_expiry(
        cls: type["Settings"], v: int, info: ValidationInfo
    ) -> int:
        """Critical challenges must not outlive standard ones."""
        if "mfa_default_expiry_minutes" in info.data:
            default_minutes = info.data["mfa_default_expiry_minutes"]
            if v > default_minutes:
                raise ValueError(
                    f"mfa_critical_expiry_minutes ({v}) must be <= "
                    f"mfa_default_expiry_minutes ({default_minutes})"
                )
        return v

    @property
    @beartype
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    @beartype
    def log_level_value(self) -> int:
        """Numeric logging level."""
        return logging.getLevelName(self.log_level)


_settings: Settings | None = None


@beartype
def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


@beartype
def clear_settings_cache() -> None:
    """Clear settings cache (for testing)."""
    global _settings
    _settings = None
