"""Data models for the privacy governance engine."""

from family_privacy.models.access_log import (
    AccessLog,
    AccessResult,
    ActorType,
    AuditReport,
    AuditSummary,
    LogFilters,
    PrivacyAction,
    ReportFormat,
    Severity,
    SuspiciousActivity,
    SuspiciousActivityType,
)
from family_privacy.models.deletion import (
    DeletionRequest,
    DeletionScope,
    DeletionStatus,
)
from family_privacy.models.grants import (
    AccessGrant,
    FamilyMemberGrant,
    ProviderGrant,
    TemporaryGrant,
    parse_grant,
)
from family_privacy.models.privacy import (
    ChildPrivacySettings,
    CommunicationPreferences,
    CommunicationType,
    ConsentRecord,
    ConsentType,
    DataRetentionOverride,
    DataRetentionSettings,
    DataSharingPreferences,
    FamilyRole,
    LegalHold,
    Permission,
    PrivacySettings,
    default_privacy_settings,
)

__all__ = [
    "AccessGrant",
    "AccessLog",
    "AccessResult",
    "ActorType",
    "AuditReport",
    "AuditSummary",
    "ChildPrivacySettings",
    "CommunicationPreferences",
    "CommunicationType",
    "ConsentRecord",
    "ConsentType",
    "DataRetentionOverride",
    "DataRetentionSettings",
    "DataSharingPreferences",
    "DeletionRequest",
    "DeletionScope",
    "DeletionStatus",
    "FamilyMemberGrant",
    "FamilyRole",
    "LegalHold",
    "LogFilters",
    "Permission",
    "PrivacyAction",
    "PrivacySettings",
    "ProviderGrant",
    "ReportFormat",
    "Severity",
    "SuspiciousActivity",
    "SuspiciousActivityType",
    "TemporaryGrant",
    "default_privacy_settings",
    "parse_grant",
]
