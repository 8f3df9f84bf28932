"""Privacy settings models.

Enumerations and the per-account privacy settings document, including the
per-child overrides consulted by the conflict resolver.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Set
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from family_privacy.utils.dates import UtcDatetime, utc_now

PRIVACY_SETTINGS_VERSION = 1

DEFAULT_RETENTION_PERIOD = 84  # 7 years in months
DEFAULT_INACTIVITY_PERIOD = 24  # 2 years in months


class Permission(str, Enum):
    """Permissions over an account holder's family health data."""

    VIEW_SYMPTOMS = "view_symptoms"
    EDIT_SYMPTOMS = "edit_symptoms"
    VIEW_TREATMENTS = "view_treatments"
    EDIT_TREATMENTS = "edit_treatments"
    VIEW_VITALS = "view_vitals"
    EDIT_VITALS = "edit_vitals"
    VIEW_NOTES = "view_notes"
    EDIT_NOTES = "edit_notes"
    VIEW_FILES = "view_files"
    UPLOAD_FILES = "upload_files"
    VIEW_ANALYTICS = "view_analytics"
    MANAGE_ACCESS = "manage_access"
    EXPORT_DATA = "export_data"


ALL_PERMISSIONS: FrozenSet[Permission] = frozenset(Permission)


class CommunicationType(str, Enum):
    """Communication classes an account holder can opt in or out of."""

    EMAIL_NOTIFICATIONS = "email_notifications"
    SMS_NOTIFICATIONS = "sms_notifications"
    MARKETING_EMAILS = "marketing_emails"
    SECURITY_ALERTS = "security_alerts"
    MEDICAL_REMINDERS = "medical_reminders"
    THIRD_PARTY_MARKETING = "third_party_marketing"


ESSENTIAL_COMMUNICATIONS: FrozenSet[CommunicationType] = frozenset(
    {CommunicationType.SECURITY_ALERTS, CommunicationType.MEDICAL_REMINDERS}
)


class ConsentType(str, Enum):
    """Types of data sharing consent."""

    RESEARCH_PARTICIPATION = "research_participation"
    ANONYMIZED_DATA_SHARING = "anonymized_data_sharing"
    MARKETING_CONSENT = "marketing_consent"
    THIRD_PARTY_INTEGRATION = "third_party_integration"
    DATA_PROCESSING = "data_processing"


class FamilyRole(str, Enum):
    """Roles a family member can hold on an account."""

    PARENT = "parent"
    GUARDIAN = "guardian"
    CAREGIVER = "caregiver"
    VIEWER = "viewer"


VIEW_ONLY_PERMISSIONS: FrozenSet[Permission] = frozenset(
    {
        Permission.VIEW_SYMPTOMS,
        Permission.VIEW_TREATMENTS,
        Permission.VIEW_VITALS,
        Permission.VIEW_NOTES,
        Permission.VIEW_FILES,
        Permission.VIEW_ANALYTICS,
    }
)

PERMISSION_GROUPS: Dict[str, FrozenSet[Permission]] = {
    "view_only": VIEW_ONLY_PERMISSIONS,
    "basic_edit": frozenset(
        {
            Permission.VIEW_SYMPTOMS,
            Permission.EDIT_SYMPTOMS,
            Permission.VIEW_TREATMENTS,
            Permission.VIEW_VITALS,
            Permission.VIEW_NOTES,
            Permission.EDIT_NOTES,
        }
    ),
    "full_access": ALL_PERMISSIONS - {Permission.MANAGE_ACCESS},
    "admin": ALL_PERMISSIONS,
}

ROLE_PERMISSIONS: Dict[FamilyRole, FrozenSet[Permission]] = {
    FamilyRole.PARENT: PERMISSION_GROUPS["admin"],
    FamilyRole.GUARDIAN: PERMISSION_GROUPS["admin"],
    FamilyRole.CAREGIVER: PERMISSION_GROUPS["full_access"],
    FamilyRole.VIEWER: PERMISSION_GROUPS["view_only"],
}


class ConsentRecord(BaseModel):
    """Immutable entry in the consent history."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    consent_type: ConsentType
    granted: bool
    timestamp: UtcDatetime = Field(default_factory=utc_now)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    version: str = str(PRIVACY_SETTINGS_VERSION)


class DataSharingPreferences(BaseModel):
    """Data sharing consents and their history."""

    research_participation: bool = False
    anonymized_data_sharing: bool = False
    third_party_integrations: Dict[str, bool] = Field(default_factory=dict)
    marketing_consent: bool = False
    consent_history: List[ConsentRecord] = Field(default_factory=list)


class AccessControlSettings(BaseModel):
    """Index of the grant ids issued on the account, by grant kind."""

    family_members: List[str] = Field(default_factory=list)
    healthcare_providers: List[str] = Field(default_factory=list)
    temporary_access: List[str] = Field(default_factory=list)


class LegalHold(BaseModel):
    """Administrative hold suspending deletion for an account."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    reason: str
    applied_at: UtcDatetime = Field(default_factory=utc_now)
    applied_by: str
    is_active: bool = True
    expires_at: Optional[UtcDatetime] = None
    affected_data_types: List[str] = Field(default_factory=list)

    def is_in_force(self, now: datetime) -> bool:
        """Check whether the hold currently blocks deletion."""
        if not self.is_active:
            return False
        return self.expires_at is None or self.expires_at > now


class DataRetentionSettings(BaseModel):
    """Account-wide retention configuration (periods in months)."""

    automatic_deletion: bool = False
    retention_period: int = DEFAULT_RETENTION_PERIOD
    delete_after_inactivity: bool = False
    inactivity_period: int = DEFAULT_INACTIVITY_PERIOD
    legal_holds: List[LegalHold] = Field(default_factory=list)

    def active_legal_holds(self, now: datetime) -> List[LegalHold]:
        """Get holds currently in force."""
        return [hold for hold in self.legal_holds if hold.is_in_force(now)]


class DataRetentionOverride(BaseModel):
    """Per-child retention override; unset fields fall back to the account."""

    automatic_deletion: Optional[bool] = None
    retention_period: Optional[int] = None
    delete_after_inactivity: Optional[bool] = None
    inactivity_period: Optional[int] = None


class CommunicationRecord(BaseModel):
    """History entry for a communication preference change."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: CommunicationType
    enabled: bool
    changed_at: UtcDatetime = Field(default_factory=utc_now)
    changed_by: str
    reason: Optional[str] = None


class CommunicationPreferences(BaseModel):
    """Communication opt-ins. Essential classes are always enabled."""

    email_notifications: bool = True
    sms_notifications: bool = False
    marketing_emails: bool = False
    security_alerts: bool = True
    medical_reminders: bool = True
    third_party_marketing: bool = False
    communication_history: List[CommunicationRecord] = Field(default_factory=list)

    def is_enabled(self, communication_type: CommunicationType) -> bool:
        """Check whether a communication class is enabled."""
        return bool(getattr(self, communication_type.value))


class ChildPrivacySettings(BaseModel):
    """Per-child privacy overrides."""

    child_id: str
    restricted_access: bool = False
    allowed_users: Set[str] = Field(default_factory=set)
    communication_restrictions: Set[CommunicationType] = Field(default_factory=set)
    inherit_from_parent: bool = True
    custom_permissions: Optional[Dict[str, Set[Permission]]] = None
    data_retention_override: Optional[DataRetentionOverride] = None


class PrivacySettings(BaseModel):
    """Privacy settings document, one per account owner."""

    owner_id: str
    data_sharing: DataSharingPreferences = Field(default_factory=DataSharingPreferences)
    access_control: AccessControlSettings = Field(default_factory=AccessControlSettings)
    data_retention: DataRetentionSettings = Field(default_factory=DataRetentionSettings)
    communications: CommunicationPreferences = Field(
        default_factory=CommunicationPreferences
    )
    child_specific: Dict[str, ChildPrivacySettings] = Field(default_factory=dict)
    version: int = PRIVACY_SETTINGS_VERSION
    created_at: UtcDatetime = Field(default_factory=utc_now)
    last_updated: UtcDatetime = Field(default_factory=utc_now)

    def has_active_legal_hold(self, now: datetime) -> bool:
        """Check whether any legal hold is in force on the account."""
        return bool(self.data_retention.active_legal_holds(now))


def default_privacy_settings(
    owner_id: str,
    retention_period: int = DEFAULT_RETENTION_PERIOD,
    inactivity_period: int = DEFAULT_INACTIVITY_PERIOD,
    now: Optional[UtcDatetime] = None,
) -> PrivacySettings:
    """Build the settings a new account starts with.

    Every sharing flag is off, essential communications are on and retention
    uses the configured defaults.
    """
    now = now or utc_now()
    return PrivacySettings(
        owner_id=owner_id,
        data_retention=DataRetentionSettings(
            retention_period=retention_period,
            inactivity_period=inactivity_period,
        ),
        created_at=now,
        last_updated=now,
    )
