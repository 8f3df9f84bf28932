"""
Privacy Audit Service.

Appends privacy-relevant actions to the audit trail. Writing an audit entry
never fails the operation being audited: write failures are swallowed here
and escalated to the audit failure channel.
"""

from typing import List, Optional

from family_privacy.audit.failure_channel import AuditFailureChannel
from family_privacy.config import Settings, get_settings
from family_privacy.models.access_log import (
    AccessLog,
    AccessResult,
    ActorType,
    LogFilters,
    PrivacyAction,
)
from family_privacy.repositories.access_log_repository import AccessLogRepository
from family_privacy.utils.dates import Clock, utc_now
from family_privacy.utils.logging import get_logger

logger = get_logger(__name__)


class PrivacyAuditService:
    """Writes and reads the privacy audit trail."""

    def __init__(
        self,
        logs: AccessLogRepository,
        failure_channel: Optional[AuditFailureChannel] = None,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
    ):
        """Initialize the audit service.

        Args:
            logs: Access log repository
            failure_channel: Escalation channel for failed writes
            settings: Configuration (query limits)
            clock: Time source for entry timestamps
        """
        self.logs = logs
        self.failure_channel = failure_channel or AuditFailureChannel(logs.store, clock)
        self.settings = settings or get_settings()
        self._clock = clock

    def log_action(
        self,
        owner_id: str,
        action: PrivacyAction,
        actor_id: Optional[str] = None,
        actor_name: str = "User",
        actor_type: ActorType = ActorType.OWNER,
        resource_type: str = "unknown",
        resource_id: Optional[str] = None,
        child_id: Optional[str] = None,
        result: AccessResult = AccessResult.SUCCESS,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        session_id: Optional[str] = None,
        details: Optional[str] = None,
    ) -> Optional[AccessLog]:
        """
        Append an entry to the audit trail.

        Args:
            owner_id: Account the action concerns
            action: Privacy action performed
            actor_id: Identity that acted; defaults to the owner
            actor_name: Display name of the actor
            actor_type: Kind of actor
            resource_type: Type of resource touched
            resource_id: Resource touched
            child_id: Child whose data was touched
            result: Outcome of the action
            ip_address: Originating address
            user_agent: Client user agent
            session_id: Client session
            details: Free-form details

        Returns:
            The stored entry, or None if the write failed
        """
        entry = AccessLog(
            owner_id=owner_id,
            actor_id=actor_id or owner_id,
            actor_name=actor_name,
            actor_type=actor_type,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            child_id=child_id,
            timestamp=self._clock(),
            result=result,
            ip_address=ip_address,
            user_agent=user_agent,
            session_id=session_id,
            details=details,
        )

        try:
            self.logs.append(entry)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self.failure_channel.escalate(entry, e)
            return None

        logger.debug(
            "privacy_action_logged",
            log_id=entry.id,
            owner_id=owner_id,
            action=action.value,
            result=result.value,
        )
        return entry

    def get_access_logs(
        self,
        owner_id: str,
        filters: Optional[LogFilters] = None,
        limit: Optional[int] = None,
    ) -> List[AccessLog]:
        """
        Get an account's audit entries, newest first.

        Args:
            owner_id: Account to read
            filters: Date range, actor, action, resource, child and result filters
            limit: Maximum number of entries, never above the configured cap

        Returns:
            Matching entries
        """
        cap = self.settings.audit_query_limit
        limit = cap if limit is None else min(limit, cap)
        return self.logs.query(owner_id, filters, limit=limit)
