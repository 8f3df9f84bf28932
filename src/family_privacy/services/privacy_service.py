"""
Privacy Settings Service.

Reads and updates an account's privacy settings and manages the access
grants issued on the account. Updates are validated in full against the
closed per-category update types before anything is merged, and every change
is recorded in the audit trail.
"""

import re
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from family_privacy.audit.audit_service import PrivacyAuditService
from family_privacy.authorization.engine import AuthorizationEngine
from family_privacy.config import Settings, get_settings
from family_privacy.core.exceptions import AuthorizationDenied, NotFound, ValidationError
from family_privacy.lifecycle.consent import ConsentManager
from family_privacy.models.access_log import AccessResult, ActorType, PrivacyAction
from family_privacy.models.grants import (
    GRANT_COLLECTIONS,
    AccessGrant,
    FamilyMemberGrant,
    ProviderGrant,
    TemporaryGrant,
)
from family_privacy.models.privacy import (
    ROLE_PERMISSIONS,
    VIEW_ONLY_PERMISSIONS,
    ChildPrivacySettings,
    CommunicationRecord,
    CommunicationType,
    ConsentType,
    FamilyRole,
    Permission,
    PrivacySettings,
    default_privacy_settings,
)
from family_privacy.models.settings_update import (
    ChildPrivacyUpdate,
    CommunicationsUpdate,
    DataSharingUpdate,
    RetentionUpdate,
    SettingsCategory,
    SettingsUpdate,
    validate_settings_update,
)
from family_privacy.repositories.grant_repository import GrantRepository
from family_privacy.repositories.settings_repository import PrivacySettingsRepository
from family_privacy.utils.dates import Clock, ensure_utc, utc_now
from family_privacy.utils.locks import KeyedLocks
from family_privacy.utils.logging import get_logger

logger = get_logger(__name__)

_EMAIL_ADAPTER: TypeAdapter = TypeAdapter(EmailStr)

_SHARING_CONSENTS: Dict[str, ConsentType] = {
    "research_participation": ConsentType.RESEARCH_PARTICIPATION,
    "anonymized_data_sharing": ConsentType.ANONYMIZED_DATA_SHARING,
    "marketing_consent": ConsentType.MARKETING_CONSENT,
}

# Index list in access_control holding each grant kind
_INDEX_FIELDS = {
    "family_member": "family_members",
    "provider": "healthcare_providers",
    "temporary": "temporary_access",
}

_PROVIDER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:@-]+$")


class PrivacySettingsService:
    """Privacy settings and access grant management for an account."""

    def __init__(
        self,
        settings_repository: PrivacySettingsRepository,
        grants: GrantRepository,
        engine: AuthorizationEngine,
        audit: PrivacyAuditService,
        consent: ConsentManager,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
        owner_locks: Optional[KeyedLocks] = None,
    ):
        """Initialize the service.

        Args:
            settings_repository: Privacy settings store
            grants: Grant store
            engine: Authorization engine, consulted for ``manage_access``
            audit: Audit service
            consent: Consent manager applying data sharing changes
            settings: Configuration (defaults, bounds, grant limits)
            clock: Time source
            owner_locks: Per-account locks shared with other settings writers
        """
        self.settings_repository = settings_repository
        self.grants = grants
        self.engine = engine
        self.audit = audit
        self.consent = consent
        self.settings = settings or get_settings()
        self._clock = clock
        self._owner_locks = owner_locks if owner_locks is not None else KeyedLocks()
        self._grant_locks = KeyedLocks()

    # Settings

    def get_settings(self, owner_id: str) -> PrivacySettings:
        """Get an account's settings, creating the defaults on first use."""
        settings = self.settings_repository.get(owner_id)
        if settings is not None:
            return settings

        settings = default_privacy_settings(
            owner_id,
            retention_period=self.settings.default_retention_months,
            inactivity_period=self.settings.default_inactivity_months,
            now=self._clock(),
        )
        self.settings_repository.save(settings)
        logger.info("privacy_settings_created", owner_id=owner_id)
        return settings

    def update_settings(
        self,
        requester_id: str,
        owner_id: str,
        category: Union[SettingsCategory, str],
        payload: Mapping[str, Any],
    ) -> PrivacySettings:
        """
        Update one category of an account's settings.

        Data sharing changes are applied as consent grants and revocations,
        one per changed flag or integration.

        Args:
            requester_id: Identity making the change
            owner_id: Account whose settings change
            category: Settings category
            payload: Fields to change

        Returns:
            The updated settings

        Raises:
            AuthorizationDenied: If the requester may not manage the account
            ValidationError: If the update is illegal; nothing is changed
        """
        self._authorize_manage(requester_id, owner_id, PrivacyAction.UPDATE_PRIVACY_SETTINGS)

        try:
            update = validate_settings_update(category, payload, self.settings)
        except ValidationError as e:
            self._log(
                owner_id,
                PrivacyAction.UPDATE_PRIVACY_SETTINGS,
                requester_id,
                resource_type="privacy_settings",
                resource_id=str(getattr(category, "value", category)),
                result=AccessResult.ERROR,
                details=e.message,
            )
            raise

        if isinstance(update, DataSharingUpdate):
            settings = self._apply_sharing_consents(requester_id, owner_id, update)
            changed = sorted(update.changes())
        else:
            now = self._clock()
            with self._owner_locks.hold(owner_id):
                settings = self.get_settings(owner_id)
                changed = self._merge(settings, update, requester_id, now)
                settings.version += 1
                settings.last_updated = now
                self.settings_repository.save(settings)

        category = SettingsCategory(category)
        logger.info(
            "privacy_settings_updated",
            owner_id=owner_id,
            category=category.value,
            fields=changed,
        )
        self._log(
            owner_id,
            PrivacyAction.UPDATE_PRIVACY_SETTINGS,
            requester_id,
            resource_type="privacy_settings",
            resource_id=category.value,
            details=f"Updated {category.value}: {', '.join(changed) or 'no changes'}",
        )
        return settings

    def _merge(
        self,
        settings: PrivacySettings,
        update: SettingsUpdate,
        requester_id: str,
        now: datetime,
    ) -> List[str]:
        if isinstance(update, RetentionUpdate):
            for name, value in update.changes().items():
                if value is not None:
                    setattr(settings.data_retention, name, value)
            return sorted(update.changes())
        if isinstance(update, CommunicationsUpdate):
            return self._merge_communications(settings, update, requester_id, now)
        if isinstance(update, ChildPrivacyUpdate):
            return self._merge_child(settings, update)
        raise ValidationError(f"Unsupported settings update: {type(update).__name__}")

    def _apply_sharing_consents(
        self, requester_id: str, owner_id: str, update: DataSharingUpdate
    ) -> PrivacySettings:
        sharing = self.get_settings(owner_id).data_sharing
        for name, value in update.changes().items():
            if value is None:
                continue
            if name == "third_party_integrations":
                for integration, enabled in value.items():
                    if sharing.third_party_integrations.get(integration) != enabled:
                        self._change_consent(
                            owner_id,
                            requester_id,
                            ConsentType.THIRD_PARTY_INTEGRATION,
                            enabled,
                            integration,
                        )
            elif getattr(sharing, name) != value:
                self._change_consent(owner_id, requester_id, _SHARING_CONSENTS[name], value)
        return self.get_settings(owner_id)

    def _change_consent(
        self,
        owner_id: str,
        requester_id: str,
        consent_type: ConsentType,
        granted: bool,
        integration: Optional[str] = None,
    ) -> None:
        if granted:
            self.consent.grant_consent(
                owner_id, consent_type, granted_by=requester_id, integration=integration
            )
        else:
            self.consent.revoke_consent(
                owner_id, consent_type, revoked_by=requester_id, integration=integration
            )

    def _merge_communications(
        self,
        settings: PrivacySettings,
        update: CommunicationsUpdate,
        requester_id: str,
        now: datetime,
    ) -> List[str]:
        communications = settings.communications
        changes = update.changes()
        for name, enabled in changes.items():
            if enabled is None or getattr(communications, name) == enabled:
                continue
            setattr(communications, name, enabled)
            communications.communication_history.append(
                CommunicationRecord(
                    type=CommunicationType(name),
                    enabled=enabled,
                    changed_at=now,
                    changed_by=requester_id,
                )
            )
        return sorted(changes)

    def _merge_child(self, settings: PrivacySettings, update: ChildPrivacyUpdate) -> List[str]:
        child = settings.child_specific.get(update.child_id) or ChildPrivacySettings(
            child_id=update.child_id
        )
        changed = []
        for name in sorted(update.model_fields_set - {"child_id"}):
            value = getattr(update, name)
            if name == "data_retention_override" and value is not None:
                value = value.to_override()
            elif value is None and name not in ("custom_permissions", "data_retention_override"):
                continue
            setattr(child, name, value)
            changed.append(name)
        settings.child_specific[update.child_id] = child
        return [f"{update.child_id}.{name}" for name in changed]

    # Grants

    def grant_family_access(
        self,
        owner_id: str,
        grantee_id: str,
        role: FamilyRole,
        granted_by: Optional[str] = None,
        grantee_name: Optional[str] = None,
        grantee_email: Optional[str] = None,
    ) -> FamilyMemberGrant:
        """
        Give a family member standing access with the permissions of a role.

        Raises:
            AuthorizationDenied: If the granter may not manage the account
            ValidationError: If the grantee is the owner or already has access
        """
        granted_by = granted_by or owner_id
        self._authorize_manage(granted_by, owner_id, PrivacyAction.GRANT_ACCESS)
        role = FamilyRole(role)

        if grantee_id == owner_id:
            raise ValidationError("Account owner cannot be granted family access")
        if grantee_email is not None:
            grantee_email = self._validate_email(grantee_email)

        now = self._clock()
        if any(
            g.kind == "family_member" and g.is_valid(now)
            for g in self.grants.list_for_grantee(owner_id, grantee_id)
        ):
            raise ValidationError("Family member already has access")

        grant = FamilyMemberGrant(
            owner_id=owner_id,
            grantee_id=grantee_id,
            grantee_name=grantee_name,
            grantee_email=grantee_email,
            permissions=set(ROLE_PERMISSIONS[role]),
            role=role,
            granted_at=now,
            granted_by=granted_by,
        )
        return self._issue(grant, f"Family access granted with role {role.value}")

    def grant_provider_access(
        self,
        owner_id: str,
        provider_id: str,
        provider_name: str,
        permissions: Iterable[Permission],
        organization: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        access_method: str = "direct_access",
        granted_by: Optional[str] = None,
        provider_email: Optional[str] = None,
    ) -> ProviderGrant:
        """
        Give a healthcare provider access, optionally until ``expires_at``.

        Raises:
            AuthorizationDenied: If the granter may not manage the account
            ValidationError: If the permissions, expiry or provider are invalid
        """
        granted_by = granted_by or owner_id
        self._authorize_manage(granted_by, owner_id, PrivacyAction.GRANT_ACCESS)

        if not _PROVIDER_ID_PATTERN.match(provider_id or ""):
            raise ValidationError("Invalid provider id")
        if not provider_name or not provider_name.strip():
            raise ValidationError("Provider name is required")
        permission_set = {Permission(p) for p in permissions}
        if not permission_set:
            raise ValidationError("At least one permission is required")
        now = self._clock()
        if expires_at is not None and ensure_utc(expires_at) <= now:
            raise ValidationError("Expiry must be in the future")
        if provider_email is not None:
            provider_email = self._validate_email(provider_email)

        grant = ProviderGrant(
            owner_id=owner_id,
            grantee_id=provider_id,
            grantee_name=provider_name.strip(),
            grantee_email=provider_email,
            permissions=permission_set,
            granted_at=now,
            granted_by=granted_by,
            expires_at=expires_at,
            provider_name=provider_name.strip(),
            organization=organization,
            access_method=access_method,
        )
        return self._issue(grant, f"Provider access granted to {grant.provider_name}")

    def grant_temporary_access(
        self,
        owner_id: str,
        grantee_email: str,
        permissions: Iterable[Permission],
        expires_at: datetime,
        purpose: str = "",
        max_access_count: Optional[int] = None,
        grantee_id: Optional[str] = None,
        grantee_name: Optional[str] = None,
        granted_by: Optional[str] = None,
    ) -> TemporaryGrant:
        """
        Give time and use bounded view-only access.

        Raises:
            AuthorizationDenied: If the granter may not manage the account
            ValidationError: If the email, permissions, expiry or count are invalid
        """
        granted_by = granted_by or owner_id
        self._authorize_manage(granted_by, owner_id, PrivacyAction.GRANT_ACCESS)

        email = self._validate_email(grantee_email)
        permission_set = {Permission(p) for p in permissions}
        if not permission_set:
            raise ValidationError("At least one permission is required")
        not_view_only = sorted(p.value for p in permission_set - VIEW_ONLY_PERMISSIONS)
        if not_view_only:
            raise ValidationError(
                f"Temporary access is view-only, not allowed: {', '.join(not_view_only)}"
            )

        now = self._clock()
        expires_at = ensure_utc(expires_at)
        if expires_at <= now:
            raise ValidationError("Expiry must be in the future")
        max_days = self.settings.temporary_access_max_days
        if expires_at > now + timedelta(days=max_days):
            raise ValidationError(f"Temporary access cannot exceed {max_days} days")
        if max_access_count is not None and max_access_count <= 0:
            raise ValidationError("Maximum access count must be positive")

        grant = TemporaryGrant(
            owner_id=owner_id,
            grantee_id=grantee_id or email.lower(),
            grantee_name=grantee_name,
            grantee_email=email,
            permissions=permission_set,
            granted_at=now,
            granted_by=granted_by,
            expires_at=expires_at,
            max_access_count=max_access_count,
            purpose=purpose,
        )
        return self._issue(grant, f"Temporary access granted until {expires_at.isoformat()}")

    def revoke_access(
        self,
        owner_id: str,
        kind: str,
        grant_id: str,
        revoked_by: Optional[str] = None,
    ) -> AccessGrant:
        """
        Revoke a grant.

        Raises:
            AuthorizationDenied: If the revoker may not manage the account
            NotFound: If the account has no such grant
            ValidationError: If a family member tries to revoke their own access
        """
        revoked_by = revoked_by or owner_id
        self._authorize_manage(revoked_by, owner_id, PrivacyAction.REVOKE_ACCESS)

        grant = self.grants.get(kind, grant_id)
        if grant.owner_id != owner_id:
            raise NotFound(f"Access record {grant_id} not found")
        if grant.kind == "family_member" and grant.grantee_id == revoked_by:
            raise ValidationError("Cannot revoke your own family access")

        now = self._clock()
        with self._grant_locks.hold(grant.id):
            grant.is_active = False
            grant.revoked_at = now
            grant.revoked_by = revoked_by
            self.grants.save(grant)

        with self._owner_locks.hold(owner_id):
            settings = self.get_settings(owner_id)
            index = getattr(settings.access_control, _INDEX_FIELDS[grant.kind])
            if grant.id in index:
                index.remove(grant.id)
                settings.last_updated = now
                self.settings_repository.save(settings)

        logger.info("access_revoked", owner_id=owner_id, grant_id=grant.id, kind=grant.kind)
        self._log(
            owner_id,
            PrivacyAction.REVOKE_ACCESS,
            revoked_by,
            resource_type=GRANT_COLLECTIONS[grant.kind],
            resource_id=grant.id,
            details=f"Access revoked for {grant.grantee_id}",
        )
        return grant

    def list_grants(self, owner_id: str, kind: Optional[str] = None) -> List[AccessGrant]:
        """Get the grants issued on an account."""
        return self.grants.list_for_owner(owner_id, kind)

    def record_grant_use(self, owner_id: str, grant_id: str) -> None:
        """
        Record that a grant allowed an access.

        Temporary grants count the use against their maximum.

        Raises:
            NotFound: If the account has no such grant
            AuthorizationDenied: If a temporary grant is already used up
        """
        with self._grant_locks.hold(grant_id):
            grant = self.grants.find(grant_id)
            if grant.owner_id != owner_id:
                raise NotFound(f"Access record {grant_id} not found")

            if isinstance(grant, TemporaryGrant):
                if grant.is_exhausted():
                    raise AuthorizationDenied("Temporary access limit reached")
                grant.access_count += 1
            grant.last_accessed = self._clock()
            self.grants.save(grant)

    def _issue(self, grant: AccessGrant, details: str) -> AccessGrant:
        self.grants.save(grant)
        with self._owner_locks.hold(grant.owner_id):
            settings = self.get_settings(grant.owner_id)
            getattr(settings.access_control, _INDEX_FIELDS[grant.kind]).append(grant.id)
            settings.last_updated = self._clock()
            self.settings_repository.save(settings)

        logger.info(
            "access_granted",
            owner_id=grant.owner_id,
            grant_id=grant.id,
            kind=grant.kind,
            permissions=sorted(p.value for p in grant.permissions),
        )
        self._log(
            grant.owner_id,
            PrivacyAction.GRANT_ACCESS,
            grant.granted_by or grant.owner_id,
            resource_type=GRANT_COLLECTIONS[grant.kind],
            resource_id=grant.id,
            details=details,
        )
        return grant

    def _validate_email(self, email: str) -> str:
        try:
            return str(_EMAIL_ADAPTER.validate_python(email))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid email address: {email}") from e

    def _authorize_manage(self, requester_id: str, owner_id: str, action: PrivacyAction) -> None:
        if requester_id == owner_id:
            return
        if self.engine.has_permission(requester_id, owner_id, Permission.MANAGE_ACCESS):
            return
        self._log(
            owner_id,
            action,
            requester_id,
            resource_type="privacy_settings",
            result=AccessResult.DENIED,
            details="Requester lacks manage_access",
        )
        raise AuthorizationDenied("Only the account owner or a manager can change access")

    def _log(
        self,
        owner_id: str,
        action: PrivacyAction,
        actor_id: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        result: AccessResult = AccessResult.SUCCESS,
        details: Optional[str] = None,
    ) -> None:
        self.audit.log_action(
            owner_id,
            action,
            actor_id=actor_id,
            actor_type=(
                ActorType.OWNER
                if actor_id == owner_id
                else self.engine.actor_type_for(actor_id, owner_id)
            ),
            resource_type=resource_type,
            resource_id=resource_id,
            result=result,
            details=details,
        )
