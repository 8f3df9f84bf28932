"""Access Guard.

Runs a privacy-sensitive operation through rate limiting, the authorization
engine and the audit trail. Every check produces exactly one access log entry
whose result matches the outcome the caller sees.
"""

from typing import Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel

from family_privacy.audit.audit_service import PrivacyAuditService
from family_privacy.authorization.engine import (
    AuthorizationDecision,
    AuthorizationEngine,
    AuthorizationRequest,
)
from family_privacy.core.exceptions import (
    AuthorizationDenied,
    PrivacyGovernanceError,
    RateLimitExceeded,
)
from family_privacy.models.access_log import AccessResult, PrivacyAction
from family_privacy.models.privacy import Permission
from family_privacy.utils.logging import get_logger
from family_privacy.utils.monitoring import record_decision
from family_privacy.utils.rate_limiter import FixedWindowRateLimiter

logger = get_logger(__name__)

# Rate limit class of each permission
ACTION_CLASSES: Dict[Permission, str] = {
    Permission.VIEW_SYMPTOMS: "read",
    Permission.VIEW_TREATMENTS: "read",
    Permission.VIEW_VITALS: "read",
    Permission.VIEW_NOTES: "read",
    Permission.VIEW_FILES: "read",
    Permission.VIEW_ANALYTICS: "read",
    Permission.EDIT_SYMPTOMS: "write",
    Permission.EDIT_TREATMENTS: "write",
    Permission.EDIT_VITALS: "write",
    Permission.EDIT_NOTES: "write",
    Permission.UPLOAD_FILES: "write",
    Permission.EXPORT_DATA: "export",
    Permission.MANAGE_ACCESS: "admin",
}

_DEFAULT_ACTIONS: Dict[str, PrivacyAction] = {
    "read": PrivacyAction.VIEW_DATA,
    "write": PrivacyAction.EDIT_DATA,
    "export": PrivacyAction.EXPORT_DATA,
    "admin": PrivacyAction.UPDATE_PRIVACY_SETTINGS,
}

GrantUseRecorder = Callable[[str, str], None]


class AccessContext(BaseModel):
    """Request metadata recorded with the access log entry."""

    actor_name: str = "User"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None


class AccessGuard:
    """Rate limit, decide and audit privacy-sensitive operations."""

    def __init__(
        self,
        engine: AuthorizationEngine,
        audit: PrivacyAuditService,
        rate_limiter: FixedWindowRateLimiter,
        record_grant_use: Optional[GrantUseRecorder] = None,
    ):
        """Initialize the guard.

        Args:
            engine: Authorization decision engine
            audit: Audit service receiving one entry per check
            rate_limiter: Fixed window limiter keyed by requester and action class
            record_grant_use: Called with (owner_id, grant_id) for every grant
                that allowed an access
        """
        self.engine = engine
        self.audit = audit
        self.rate_limiter = rate_limiter
        self.record_grant_use = record_grant_use

    def check(
        self,
        requester_id: str,
        owner_id: str,
        permission: Permission,
        action: Optional[PrivacyAction] = None,
        resource_type: str = "unknown",
        resource_id: Optional[str] = None,
        child_id: Optional[str] = None,
        context: Optional[AccessContext] = None,
    ) -> AuthorizationDecision:
        """Check one access against a single child or the whole account.

        Returns:
            The decision; ``allowed`` is False for denials, errors and
            rate-limited requests
        """
        request = AuthorizationRequest(
            requester_id=requester_id,
            owner_id=owner_id,
            permission=permission,
            child_ids=[child_id] if child_id else [],
        )
        return self._run(request, action, resource_type, resource_id, child_id, context)

    def check_multi_child(
        self,
        requester_id: str,
        owner_id: str,
        permission: Permission,
        child_ids: Sequence[str],
        action: Optional[PrivacyAction] = None,
        resource_type: str = "unknown",
        resource_id: Optional[str] = None,
        context: Optional[AccessContext] = None,
    ) -> AuthorizationDecision:
        """Check a family-wide operation touching several children at once."""
        request = AuthorizationRequest(
            requester_id=requester_id,
            owner_id=owner_id,
            permission=permission,
            child_ids=list(child_ids),
        )
        return self._run(request, action, resource_type, resource_id, None, context)

    def require(
        self,
        requester_id: str,
        owner_id: str,
        permission: Permission,
        **kwargs,
    ) -> AuthorizationDecision:
        """Check an access and raise unless it is allowed.

        Raises:
            RateLimitExceeded: If the requester is over the limit
            AuthorizationDenied: If the access is denied or errored
        """
        decision = self.check(requester_id, owner_id, permission, **kwargs)
        if decision.rate_limited:
            raise RateLimitExceeded()
        if not decision.allowed:
            raise AuthorizationDenied("; ".join(decision.reasons) or "Access denied")
        return decision

    def _run(
        self,
        request: AuthorizationRequest,
        action: Optional[PrivacyAction],
        resource_type: str,
        resource_id: Optional[str],
        child_id: Optional[str],
        context: Optional[AccessContext],
    ) -> AuthorizationDecision:
        context = context or AccessContext()
        action_class = ACTION_CLASSES[request.permission]
        action = action or _DEFAULT_ACTIONS[action_class]

        if not self.rate_limiter.allow(request.requester_id, action_class):
            decision = AuthorizationDecision(
                allowed=False,
                permission=request.permission,
                actor_type=self.engine.actor_type_for(
                    request.requester_id, request.owner_id
                ),
                reasons=[f"Rate limit exceeded for {action_class} actions"],
                rate_limited=True,
            )
        else:
            decision = self.engine.decide(request)
            if decision.allowed and request.requester_id != request.owner_id:
                decision = self._record_use(request, decision)

        record_decision(decision.allowed, error=decision.error)
        self._audit(request, decision, action, resource_type, resource_id, child_id, context)
        return decision

    def _record_use(
        self, request: AuthorizationRequest, decision: AuthorizationDecision
    ) -> AuthorizationDecision:
        if self.record_grant_use is None:
            return decision
        try:
            for grant_id in decision.source_grants:
                self.record_grant_use(request.owner_id, grant_id)
        except AuthorizationDenied as e:
            return decision.model_copy(
                update={"allowed": False, "reasons": decision.reasons + [e.message]}
            )
        except PrivacyGovernanceError as e:
            logger.error(
                "grant_use_not_recorded",
                owner_id=request.owner_id,
                requester_id=request.requester_id,
                error=str(e),
            )
            return decision.model_copy(
                update={
                    "allowed": False,
                    "error": True,
                    "reasons": decision.reasons + [f"Grant use not recorded: {e}"],
                }
            )
        return decision

    def _audit(
        self,
        request: AuthorizationRequest,
        decision: AuthorizationDecision,
        action: PrivacyAction,
        resource_type: str,
        resource_id: Optional[str],
        child_id: Optional[str],
        context: AccessContext,
    ) -> None:
        if decision.error:
            result = AccessResult.ERROR
        elif decision.allowed:
            result = AccessResult.SUCCESS
        else:
            result = AccessResult.DENIED

        details: List[str] = list(decision.reasons)
        if len(request.child_ids) > 1:
            details.append("Children: " + ", ".join(sorted(set(request.child_ids))))

        self.audit.log_action(
            request.owner_id,
            action,
            actor_id=request.requester_id,
            actor_name=context.actor_name,
            actor_type=decision.actor_type,
            resource_type=resource_type,
            resource_id=resource_id,
            child_id=child_id,
            result=result,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            session_id=context.session_id,
            details="; ".join(details) or None,
        )
