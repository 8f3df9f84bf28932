"""Core module for the privacy governance engine."""

from family_privacy.core.exceptions import (
    AuthorizationDenied,
    DeletionRequestConflict,
    InvalidStateTransition,
    LegalHoldBlocked,
    NotFound,
    PrivacyGovernanceError,
    RateLimitExceeded,
    StoreUnavailable,
    ValidationError,
)

__all__ = [
    "PrivacyGovernanceError",
    "AuthorizationDenied",
    "ValidationError",
    "DeletionRequestConflict",
    "InvalidStateTransition",
    "LegalHoldBlocked",
    "NotFound",
    "StoreUnavailable",
    "RateLimitExceeded",
]
