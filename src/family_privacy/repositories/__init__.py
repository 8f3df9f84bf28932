"""Repository layer for data access.

This package contains repository classes that map the governance models
onto the abstract document store.
"""

from family_privacy.repositories.access_log_repository import AccessLogRepository
from family_privacy.repositories.deletion_repository import DeletionRequestRepository
from family_privacy.repositories.grant_repository import GrantRepository
from family_privacy.repositories.settings_repository import PrivacySettingsRepository

__all__ = [
    "AccessLogRepository",
    "DeletionRequestRepository",
    "GrantRepository",
    "PrivacySettingsRepository",
]
