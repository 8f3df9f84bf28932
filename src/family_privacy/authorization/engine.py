"""Authorization Decision Engine.

Computes the effective permission set of a requester over an account holder's
data from the layered grant types, then narrows it through the child privacy
conflict resolver when children are involved.

Decisions are pure: the engine never writes to the store and never logs audit
entries. Callers record the outcome through the audit component. Any failure
while computing a decision is treated as "no permission".
"""

from datetime import datetime
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from family_privacy.authorization.conflict_resolver import ChildPrivacyConflictResolver
from family_privacy.models.access_log import ActorType
from family_privacy.models.deletion import DeletionScope, DeletionStatus
from family_privacy.models.grants import AccessGrant
from family_privacy.models.privacy import ALL_PERMISSIONS, Permission, PrivacySettings
from family_privacy.repositories.deletion_repository import DeletionRequestRepository
from family_privacy.repositories.grant_repository import GrantRepository
from family_privacy.repositories.settings_repository import PrivacySettingsRepository
from family_privacy.utils.dates import Clock, utc_now
from family_privacy.utils.logging import get_logger

logger = get_logger(__name__)

_ACTOR_TYPES = {
    "family_member": ActorType.FAMILY_MEMBER,
    "provider": ActorType.HEALTHCARE_PROVIDER,
    "temporary": ActorType.TEMPORARY_USER,
}

# Grant-based access stops once a purge of the data has started
_PURGE_STATUSES = (DeletionStatus.IN_PROGRESS, DeletionStatus.COMPLETED)

class AuthorizationRequest(BaseModel):
    """Request for an authorization decision."""

    requester_id: str
    owner_id: str
    permission: Optional[Permission] = None
    child_ids: List[str] = Field(default_factory=list)


class AuthorizationDecision(BaseModel):
    """Authorization decision result."""

    allowed: bool
    permission: Optional[Permission] = None
    effective_permissions: FrozenSet[Permission] = frozenset()
    actor_type: ActorType = ActorType.SYSTEM
    reasons: List[str] = Field(default_factory=list)
    source_grants: List[str] = Field(default_factory=list)
    restricting_children: List[str] = Field(default_factory=list)
    error: bool = False
    rate_limited: bool = False
    timestamp: datetime = Field(default_factory=utc_now)


class AuthorizationEngine:
    """Resolves permissions from grants and child privacy overrides."""

    def __init__(
        self,
        grants: GrantRepository,
        settings: PrivacySettingsRepository,
        deletions: DeletionRequestRepository,
        resolver: Optional[ChildPrivacyConflictResolver] = None,
        clock: Clock = utc_now,
    ):
        """Initialize the engine.

        Args:
            grants: Grant store
            settings: Privacy settings store
            deletions: Deletion request store, consulted so that grants stop
                applying as soon as a purge starts
            resolver: Child privacy conflict resolver
            clock: Source of the current time for expiry checks
        """
        self.grants = grants
        self.settings = settings
        self.deletions = deletions
        self.resolver = resolver or ChildPrivacyConflictResolver()
        self._clock = clock

    def has_permission(
        self,
        requester_id: str,
        owner_id: str,
        permission: Permission,
        child_id: Optional[str] = None,
    ) -> bool:
        """Check a single permission."""
        return self.decide(
            AuthorizationRequest(
                requester_id=requester_id,
                owner_id=owner_id,
                permission=permission,
                child_ids=[child_id] if child_id else [],
            )
        ).allowed

    def effective_permissions(
        self, requester_id: str, owner_id: str, child_id: Optional[str] = None
    ) -> FrozenSet[Permission]:
        """Get every permission the requester currently holds."""
        return self.decide(
            AuthorizationRequest(
                requester_id=requester_id,
                owner_id=owner_id,
                child_ids=[child_id] if child_id else [],
            )
        ).effective_permissions

    def effective_permissions_for_children(
        self, requester_id: str, owner_id: str, child_ids: Sequence[str]
    ) -> FrozenSet[Permission]:
        """Get the permissions left for an operation spanning several children."""
        return self.decide(
            AuthorizationRequest(
                requester_id=requester_id, owner_id=owner_id, child_ids=list(child_ids)
            )
        ).effective_permissions

    def decide(self, request: AuthorizationRequest) -> AuthorizationDecision:
        """Make an authorization decision.

        Evaluates the owner fast path, then the union of every currently valid
        grant, then the child overrides.
        """
        if request.requester_id == request.owner_id:
            return self._finish(
                request,
                ALL_PERMISSIONS,
                ActorType.OWNER,
                reasons=["Account owner has full access to own data"],
            )

        try:
            return self._decide_from_grants(request)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error(
                "authorization_check_failed",
                requester_id=request.requester_id,
                owner_id=request.owner_id,
                error=str(e),
            )
            return AuthorizationDecision(
                allowed=False,
                permission=request.permission,
                reasons=[f"Authorization error: {e}"],
                error=True,
            )

    def _decide_from_grants(self, request: AuthorizationRequest) -> AuthorizationDecision:
        now = self._clock()
        grants = self.grants.list_for_grantee(request.owner_id, request.requester_id)
        permissions, sources = self._union_valid_grants(grants, now)
        actor_type = self._actor_type(grants, sources)

        if not permissions:
            return self._finish(
                request, frozenset(), actor_type, reasons=["No valid access grant"]
            )

        purge_reason = self._purge_in_effect(request.owner_id, request.child_ids)
        if purge_reason:
            return self._finish(request, frozenset(), actor_type, reasons=[purge_reason])

        reasons = [f"Granted by {len(sources)} valid grant(s)"]
        restricting: Tuple[str, ...] = ()
        if request.child_ids:
            settings = self.settings.get(request.owner_id) or PrivacySettings(
                owner_id=request.owner_id
            )
            resolution = self.resolver.resolve_multi_child_permissions(
                settings, request.child_ids, request.requester_id, permissions
            )
            permissions = resolution.allowed_permissions
            restricting = resolution.restricting_children
            if restricting:
                reasons.append(
                    "Restricted by child privacy settings: " + ", ".join(restricting)
                )

        return self._finish(
            request,
            permissions,
            actor_type,
            reasons=reasons,
            sources=sources,
            restricting=restricting,
        )

    def _union_valid_grants(
        self, grants: Iterable[AccessGrant], now: datetime
    ) -> Tuple[FrozenSet[Permission], List[str]]:
        permissions: FrozenSet[Permission] = frozenset()
        sources: List[str] = []
        for grant in grants:
            granted = grant.effective_permissions(now)
            if granted:
                permissions |= granted
                sources.append(grant.id)
        return permissions, sorted(sources)

    def _actor_type(self, grants: Iterable[AccessGrant], sources: List[str]) -> ActorType:
        contributing = [g for g in grants if g.id in sources] or list(grants)
        # Prefer the most standing relationship when several grants apply
        for kind in ("family_member", "provider", "temporary"):
            if any(g.kind == kind for g in contributing):
                return _ACTOR_TYPES[kind]
        return ActorType.SYSTEM

    def _purge_in_effect(self, owner_id: str, child_ids: List[str]) -> Optional[str]:
        for request in self.deletions.list_for_owner(owner_id):
            if request.status not in _PURGE_STATUSES:
                continue
            if request.scope == DeletionScope.ALL_DATA:
                return f"Account data deletion {request.status.value}"
            if (
                request.status == DeletionStatus.IN_PROGRESS
                and request.scope == DeletionScope.CHILD_SPECIFIC
                and request.child_id in child_ids
            ):
                return f"Deletion in progress for child {request.child_id}"
        return None

    def actor_type_for(self, requester_id: str, owner_id: str) -> ActorType:
        """Classify a requester for the audit trail. Never raises."""
        if requester_id == owner_id:
            return ActorType.OWNER
        try:
            grants = self.grants.list_for_grantee(owner_id, requester_id)
        except Exception:  # pylint: disable=broad-exception-caught
            return ActorType.SYSTEM
        return self._actor_type(grants, [])

    def _finish(
        self,
        request: AuthorizationRequest,
        permissions: FrozenSet[Permission],
        actor_type: ActorType,
        reasons: List[str],
        sources: Optional[List[str]] = None,
        restricting: Tuple[str, ...] = (),
    ) -> AuthorizationDecision:
        if request.permission is None:
            allowed = bool(permissions)
        else:
            allowed = request.permission in permissions
            if not allowed and permissions:
                reasons = reasons + [f"Permission {request.permission.value} not held"]

        return AuthorizationDecision(
            allowed=allowed,
            permission=request.permission,
            effective_permissions=permissions,
            actor_type=actor_type,
            reasons=reasons,
            source_grants=sources or [],
            restricting_children=list(restricting),
        )
