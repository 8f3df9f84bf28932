"""Closed settings-update types, one per settings category.

Every update is validated in full before anything is merged into the stored
settings. Unknown fields are rejected, essential communications can never be
switched off and retention periods must stay inside the configured legal
bounds.
"""

from enum import Enum
from typing import Any, Dict, Mapping, Optional, Set, Type, Union

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from family_privacy.config import Settings, get_settings
from family_privacy.core.exceptions import ValidationError
from family_privacy.models.privacy import (
    ESSENTIAL_COMMUNICATIONS,
    CommunicationType,
    DataRetentionOverride,
    Permission,
)


class SettingsCategory(str, Enum):
    """Privacy settings categories that can be updated."""

    DATA_SHARING = "data_sharing"
    DATA_RETENTION = "data_retention"
    COMMUNICATIONS = "communications"
    CHILD_SPECIFIC = "child_specific"


def _check_retention_bounds(value: Optional[int], info: ValidationInfo) -> Optional[int]:
    if value is None:
        return value
    context = info.context or {}
    minimum = context.get("min_retention_months", 12)
    maximum = context.get("max_retention_months", 84)
    if value < minimum or value > maximum:
        raise ValueError(
            f"Retention period must be between {minimum} and {maximum} months"
        )
    return value


def _check_positive_period(value: Optional[int]) -> Optional[int]:
    if value is not None and value <= 0:
        raise ValueError("Inactivity period must be a positive number of months")
    return value


class _ClosedUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    def changes(self) -> Dict[str, Any]:
        """Get only the fields the caller actually supplied."""
        return self.model_dump(exclude_unset=True)


class DataSharingUpdate(_ClosedUpdate):
    """Update to data sharing consents."""

    research_participation: Optional[bool] = None
    anonymized_data_sharing: Optional[bool] = None
    marketing_consent: Optional[bool] = None
    third_party_integrations: Optional[Dict[str, bool]] = None


class RetentionUpdate(_ClosedUpdate):
    """Update to account-wide data retention."""

    automatic_deletion: Optional[bool] = None
    retention_period: Optional[int] = None
    delete_after_inactivity: Optional[bool] = None
    inactivity_period: Optional[int] = None

    @field_validator("retention_period")
    @classmethod
    def validate_retention_period(
        cls, v: Optional[int], info: ValidationInfo
    ) -> Optional[int]:
        """Retention must stay inside the legal bounds."""
        return _check_retention_bounds(v, info)

    @field_validator("inactivity_period")
    @classmethod
    def validate_inactivity_period(cls, v: Optional[int]) -> Optional[int]:
        """Inactivity period must be positive."""
        return _check_positive_period(v)


class CommunicationsUpdate(_ClosedUpdate):
    """Update to communication preferences."""

    email_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None
    marketing_emails: Optional[bool] = None
    security_alerts: Optional[bool] = None
    medical_reminders: Optional[bool] = None
    third_party_marketing: Optional[bool] = None

    @field_validator("security_alerts", "medical_reminders")
    @classmethod
    def validate_essential(cls, v: Optional[bool], info: ValidationInfo) -> Optional[bool]:
        """Essential communications cannot be disabled."""
        if v is False:
            raise ValueError(
                f"{info.field_name} is an essential communication and cannot be disabled"
            )
        return v


class ChildRetentionOverrideUpdate(_ClosedUpdate):
    """Retention override for one child."""

    automatic_deletion: Optional[bool] = None
    retention_period: Optional[int] = None
    delete_after_inactivity: Optional[bool] = None
    inactivity_period: Optional[int] = None

    @field_validator("retention_period")
    @classmethod
    def validate_retention_period(
        cls, v: Optional[int], info: ValidationInfo
    ) -> Optional[int]:
        """Retention must stay inside the legal bounds."""
        return _check_retention_bounds(v, info)

    @field_validator("inactivity_period")
    @classmethod
    def validate_inactivity_period(cls, v: Optional[int]) -> Optional[int]:
        """Inactivity period must be positive."""
        return _check_positive_period(v)

    def to_override(self) -> DataRetentionOverride:
        """Convert to the stored override model."""
        return DataRetentionOverride(**self.changes())


class ChildPrivacyUpdate(_ClosedUpdate):
    """Update to one child's privacy overrides."""

    child_id: str
    restricted_access: Optional[bool] = None
    allowed_users: Optional[Set[str]] = None
    communication_restrictions: Optional[Set[CommunicationType]] = None
    inherit_from_parent: Optional[bool] = None
    custom_permissions: Optional[Dict[str, Set[Permission]]] = None
    data_retention_override: Optional[ChildRetentionOverrideUpdate] = None

    @field_validator("child_id")
    @classmethod
    def validate_child_id(cls, v: str) -> str:
        """Child id must not be blank."""
        if not v.strip():
            raise ValueError("child_id must not be blank")
        return v

    @field_validator("communication_restrictions")
    @classmethod
    def validate_restrictions(
        cls, v: Optional[Set[CommunicationType]]
    ) -> Optional[Set[CommunicationType]]:
        """Essential communications cannot be restricted per child either."""
        if v:
            blocked = sorted(c.value for c in v & ESSENTIAL_COMMUNICATIONS)
            if blocked:
                raise ValueError(
                    f"Essential communications cannot be restricted: {', '.join(blocked)}"
                )
        return v


SettingsUpdate = Union[
    DataSharingUpdate, RetentionUpdate, CommunicationsUpdate, ChildPrivacyUpdate
]

UPDATE_TYPES: Dict[SettingsCategory, Type[_ClosedUpdate]] = {
    SettingsCategory.DATA_SHARING: DataSharingUpdate,
    SettingsCategory.DATA_RETENTION: RetentionUpdate,
    SettingsCategory.COMMUNICATIONS: CommunicationsUpdate,
    SettingsCategory.CHILD_SPECIFIC: ChildPrivacyUpdate,
}


def validate_settings_update(
    category: Union[SettingsCategory, str],
    payload: Mapping[str, Any],
    settings: Optional[Settings] = None,
) -> SettingsUpdate:
    """Validate a raw update payload for a settings category.

    Args:
        category: Settings category the payload targets
        payload: Raw update fields
        settings: Configuration supplying the retention bounds

    Returns:
        The validated, closed update object

    Raises:
        ValidationError: If the category is unknown or the payload is illegal
    """
    settings = settings or get_settings()
    try:
        category = SettingsCategory(category)
    except ValueError as e:
        raise ValidationError(f"Unknown settings category: {category}") from e

    context = {
        "min_retention_months": settings.min_retention_months,
        "max_retention_months": settings.max_retention_months,
    }
    try:
        update = UPDATE_TYPES[category].model_validate(dict(payload), context=context)
    except PydanticValidationError as e:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or category.value}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid {category.value} update: {messages}") from e

    return update  # type: ignore[return-value]
