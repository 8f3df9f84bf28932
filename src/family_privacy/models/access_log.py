"""Audit trail models: access log entries, findings and reports."""

from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from family_privacy.utils.dates import UtcDatetime, utc_now


class PrivacyAction(str, Enum):
    """Privacy-relevant actions recorded in the audit trail."""

    VIEW_DATA = "view_data"
    EDIT_DATA = "edit_data"
    EXPORT_DATA = "export_data"
    DELETE_DATA = "delete_data"
    GRANT_ACCESS = "grant_access"
    REVOKE_ACCESS = "revoke_access"
    UPDATE_PRIVACY_SETTINGS = "update_privacy_settings"
    CONSENT_CHANGE = "consent_change"
    LEGAL_HOLD_CHANGE = "legal_hold_change"
    LOGIN = "login"
    LOGOUT = "logout"
    ACCESS_DENIED = "access_denied"


# Actions that count as account activity for inactivity retention
ACTIVITY_ACTIONS = (PrivacyAction.VIEW_DATA, PrivacyAction.EDIT_DATA, PrivacyAction.LOGIN)


class AccessResult(str, Enum):
    """Outcome recorded for an audited action."""

    SUCCESS = "success"
    DENIED = "denied"
    ERROR = "error"
    PARTIAL = "partial"


class ActorType(str, Enum):
    """Kind of identity that performed an action."""

    OWNER = "owner"
    FAMILY_MEMBER = "family_member"
    HEALTHCARE_PROVIDER = "healthcare_provider"
    TEMPORARY_USER = "temporary_user"
    SYSTEM = "system"


class AccessLog(BaseModel):
    """Immutable audit trail entry."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str
    actor_id: str
    actor_name: str = "User"
    actor_type: ActorType = ActorType.SYSTEM
    action: PrivacyAction
    resource_type: str = "unknown"
    resource_id: Optional[str] = None
    child_id: Optional[str] = None
    timestamp: UtcDatetime = Field(default_factory=utc_now)
    result: AccessResult = AccessResult.SUCCESS
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    details: Optional[str] = None


class LogFilters(BaseModel):
    """Filters for access log queries."""

    start_date: Optional[UtcDatetime] = None
    end_date: Optional[UtcDatetime] = None
    actor_id: Optional[str] = None
    action: Optional[PrivacyAction] = None
    resource_type: Optional[str] = None
    child_id: Optional[str] = None
    result: Optional[AccessResult] = None

    def matches(self, entry: AccessLog) -> bool:
        """Check whether a log entry passes every set filter."""
        if self.start_date and entry.timestamp < self.start_date:
            return False
        if self.end_date and entry.timestamp > self.end_date:
            return False
        if self.actor_id and entry.actor_id != self.actor_id:
            return False
        if self.action and entry.action != self.action:
            return False
        if self.resource_type and entry.resource_type != self.resource_type:
            return False
        if self.child_id and entry.child_id != self.child_id:
            return False
        if self.result and entry.result != self.result:
            return False
        return True


class SuspiciousActivityType(str, Enum):
    """Heuristic finding types."""

    UNUSUAL_ACCESS_PATTERN = "unusual_access_pattern"
    MULTIPLE_FAILED_ATTEMPTS = "multiple_failed_attempts"
    OFF_HOURS_ACCESS = "off_hours_access"
    BULK_DATA_ACCESS = "bulk_data_access"


class Severity(str, Enum):
    """Finding severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SuspiciousActivity(BaseModel):
    """A heuristic finding referencing the log entries behind it."""

    type: SuspiciousActivityType
    description: str
    severity: Severity
    owner_id: str
    timestamp: UtcDatetime = Field(default_factory=utc_now)
    related_logs: List[str] = Field(default_factory=list)


class AuditSummary(BaseModel):
    """Aggregate figures for an audit report."""

    total_entries: int = 0
    successful_access: int = 0
    denied_access: int = 0
    unique_accessors: int = 0
    most_accessed_resource: str = "none"
    suspicious_activity: List[SuspiciousActivity] = Field(default_factory=list)


class ReportFormat(str, Enum):
    """Export formats an audit report can be rendered to."""

    PDF = "pdf"
    CSV = "csv"
    JSON = "json"


class AuditReport(BaseModel):
    """Filtered log slice plus summary."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str
    generated_at: UtcDatetime = Field(default_factory=utc_now)
    generated_by: str
    start_date: UtcDatetime
    end_date: UtcDatetime
    filters: LogFilters
    entries: List[AccessLog] = Field(default_factory=list)
    summary: AuditSummary = Field(default_factory=AuditSummary)
    format: ReportFormat = ReportFormat.JSON
    metadata: Dict[str, Any] = Field(default_factory=dict)
