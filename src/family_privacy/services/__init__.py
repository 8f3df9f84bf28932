"""Account-facing privacy services."""

from family_privacy.services.privacy_service import PrivacySettingsService

__all__ = ["PrivacySettingsService"]
