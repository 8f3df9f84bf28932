"""Authorization decisions, child privacy conflict resolution and the access guard."""

from family_privacy.authorization.conflict_resolver import (
    ChildPrivacyConflictResolver,
    ChildResolution,
    CommunicationResolution,
    MultiChildResolution,
    RetentionResolution,
)
from family_privacy.authorization.engine import (
    AuthorizationDecision,
    AuthorizationEngine,
    AuthorizationRequest,
)
from family_privacy.authorization.guard import ACTION_CLASSES, AccessContext, AccessGuard

__all__ = [
    "ACTION_CLASSES",
    "AccessContext",
    "AccessGuard",
    "AuthorizationDecision",
    "AuthorizationEngine",
    "AuthorizationRequest",
    "ChildPrivacyConflictResolver",
    "ChildResolution",
    "CommunicationResolution",
    "MultiChildResolution",
    "RetentionResolution",
]
