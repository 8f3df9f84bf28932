"""Core Exceptions Module.

This module defines the exceptions raised by the privacy governance engine.
"""

from typing import Optional


class PrivacyGovernanceError(Exception):
    """Base exception for all privacy governance errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        """Initialize exception.

        Args:
            message: Error message
            code: Optional error code
        """
        super().__init__(message)
        self.message = message
        self.code = code


class AuthorizationDenied(PrivacyGovernanceError):
    """Raised when the requester lacks the required permission."""

    def __init__(self, message: str = "Access denied"):
        """Initialize AuthorizationDenied."""
        super().__init__(message, "AUTHORIZATION_DENIED")


class ValidationError(PrivacyGovernanceError):
    """Raised when settings or requests are malformed or illegal."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        """Initialize ValidationError."""
        super().__init__(message, code)


class DeletionRequestConflict(ValidationError):
    """Raised when a deletion request is already outstanding for the account."""

    def __init__(
        self,
        message: str = (
            "Cannot create new deletion request while an existing request is outstanding"
        ),
    ):
        """Initialize DeletionRequestConflict."""
        super().__init__(message, "DELETION_REQUEST_OUTSTANDING")


class InvalidStateTransition(ValidationError):
    """Raised when a deletion request is moved along an illegal edge."""

    def __init__(self, current: str, target: str):
        """Initialize InvalidStateTransition."""
        super().__init__(
            f"Illegal deletion status transition: {current} -> {target}",
            "INVALID_STATE_TRANSITION",
        )
        self.current = current
        self.target = target


class LegalHoldBlocked(PrivacyGovernanceError):
    """Raised when an operation is refused while a legal hold is active."""

    def __init__(self, message: str = "Operation blocked by active legal hold"):
        """Initialize LegalHoldBlocked."""
        super().__init__(message, "LEGAL_HOLD_BLOCKED")


class NotFound(PrivacyGovernanceError):
    """Raised when a grant, request or settings document does not exist."""

    def __init__(self, message: str = "Record not found"):
        """Initialize NotFound."""
        super().__init__(message, "NOT_FOUND")


class StoreUnavailable(PrivacyGovernanceError):
    """Raised when a collaborator (document store, sink) fails."""

    def __init__(self, message: str = "Document store unavailable"):
        """Initialize StoreUnavailable."""
        super().__init__(message, "STORE_UNAVAILABLE")


class RateLimitExceeded(PrivacyGovernanceError):
    """Raised when an account exceeds the limit for an action class."""

    def __init__(self, message: str = "Too many requests - rate limit exceeded"):
        """Initialize RateLimitExceeded."""
        super().__init__(message, "RATE_LIMIT_EXCEEDED")
