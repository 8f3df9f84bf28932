"""Base configuration settings."""

import os
from typing import Dict, Optional

from pydantic import Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Privacy governance settings.

    Note: retention bounds are regulatory limits for medical records and are
    enforced on every settings update, so changing them changes what account
    holders are allowed to configure.
    """

    model_config = SettingsConfigDict(
        env_prefix="PRIVACY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Family Health Privacy Governance"
    environment: str = Field(
        default_factory=lambda: os.getenv("ENVIRONMENT", "development")
    )
    log_level: str = "INFO"
    log_format: str = "console"

    # Deletion lifecycle
    deletion_grace_days: int = 30
    min_retention_months: int = 12
    max_retention_months: int = 84  # 7 years (HIPAA)
    default_retention_months: int = 84
    default_inactivity_months: int = 24

    # Suspicious activity detection
    suspicious_window_days: int = 7
    failed_attempts_threshold: int = 6
    failed_attempts_high_threshold: int = 10
    off_hours_threshold: int = 3
    bulk_export_threshold: int = 3
    shared_address_threshold: int = 3
    off_hours_start: int = 6  # accesses before 06:00 are off hours
    off_hours_end: int = 22  # accesses after 22:59 are off hours
    audit_timezone: str = "UTC"
    suspicious_buffer_size: int = 500
    audit_query_limit: int = 1000

    # Rate limiting (fixed window per account and action class)
    rate_limit_window_seconds: int = 3600
    rate_limits: Dict[str, int] = Field(
        default_factory=lambda: {
            "read": 600,
            "write": 120,
            "export": 20,
            "admin": 30,
        }
    )

    # Consent revocation propagation
    propagation_max_retries: int = 3
    propagation_initial_delay: float = 1.0
    propagation_max_delay: float = 30.0
    propagation_workers: int = 4

    # Grants
    temporary_access_max_days: int = 90

    # Periodic sweeps
    store_factory: Optional[str] = None  # dotted path to a DocumentStore factory
    celery_broker_url: str = Field(
        default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379")
    )
    expiry_sweep_minutes: int = 15

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only console and json renderers are supported."""
        if v not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v

    @field_validator(
        "min_retention_months",
        "max_retention_months",
        "default_retention_months",
        "default_inactivity_months",
        "deletion_grace_days",
        "suspicious_window_days",
    )
    @classmethod
    def validate_positive(cls, v: int, info: ValidationInfo) -> int:
        """Periods must be positive."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @model_validator(mode="after")
    def validate_retention_bounds(self) -> "Settings":
        """Default retention must sit inside the legal bounds."""
        if self.min_retention_months > self.max_retention_months:
            raise ValueError("min_retention_months exceeds max_retention_months")
        if not (
            self.min_retention_months
            <= self.default_retention_months
            <= self.max_retention_months
        ):
            raise ValueError(
                "default_retention_months must be between "
                f"{self.min_retention_months} and {self.max_retention_months}"
            )
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() in ("production", "staging")
