"""Deletion request models and the status state machine."""

from enum import Enum
from typing import Dict, FrozenSet, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from family_privacy.core.exceptions import InvalidStateTransition
from family_privacy.utils.dates import UtcDatetime, utc_now


class DeletionScope(str, Enum):
    """What a deletion request removes."""

    ALL_DATA = "all_data"
    CHILD_SPECIFIC = "child_specific"
    DATE_RANGE = "date_range"
    DATA_TYPE_SPECIFIC = "data_type_specific"


class DeletionStatus(str, Enum):
    """Lifecycle states of a deletion request."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED_LEGAL_HOLD = "blocked_legal_hold"


TERMINAL_STATUSES: FrozenSet[DeletionStatus] = frozenset(
    {DeletionStatus.COMPLETED, DeletionStatus.FAILED}
)

# Statuses that count as an outstanding request for the account
OUTSTANDING_STATUSES: FrozenSet[DeletionStatus] = frozenset(
    {
        DeletionStatus.PENDING,
        DeletionStatus.SCHEDULED,
        DeletionStatus.BLOCKED_LEGAL_HOLD,
        DeletionStatus.IN_PROGRESS,
    }
)

ALLOWED_TRANSITIONS: Dict[DeletionStatus, FrozenSet[DeletionStatus]] = {
    DeletionStatus.PENDING: frozenset(
        {
            DeletionStatus.SCHEDULED,
            DeletionStatus.BLOCKED_LEGAL_HOLD,
            DeletionStatus.FAILED,
        }
    ),
    DeletionStatus.SCHEDULED: frozenset(
        {
            DeletionStatus.IN_PROGRESS,
            DeletionStatus.BLOCKED_LEGAL_HOLD,
            DeletionStatus.FAILED,
        }
    ),
    DeletionStatus.IN_PROGRESS: frozenset(
        {
            DeletionStatus.COMPLETED,
            DeletionStatus.FAILED,
            DeletionStatus.BLOCKED_LEGAL_HOLD,
        }
    ),
    DeletionStatus.BLOCKED_LEGAL_HOLD: frozenset(
        {DeletionStatus.SCHEDULED, DeletionStatus.FAILED}
    ),
    DeletionStatus.COMPLETED: frozenset(),
    DeletionStatus.FAILED: frozenset(),
}


class DeletionRequest(BaseModel):
    """A request to purge account data."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str
    requested_by: str
    scope: DeletionScope
    status: DeletionStatus = DeletionStatus.PENDING
    requested_at: UtcDatetime = Field(default_factory=utc_now)
    scheduled_for: Optional[UtcDatetime] = None
    started_at: Optional[UtcDatetime] = None
    completed_at: Optional[UtcDatetime] = None
    reason: Optional[str] = None
    legal_hold_blocked: bool = False
    affected_records: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    automatic: bool = False

    # Scope parameters
    child_id: Optional[str] = None
    start_date: Optional[UtcDatetime] = None
    end_date: Optional[UtcDatetime] = None
    data_types: List[str] = Field(default_factory=list)

    @property
    def is_outstanding(self) -> bool:
        """Check whether the request still blocks a new one."""
        return self.status in OUTSTANDING_STATUSES

    def transition(self, target: DeletionStatus) -> None:
        """Move to ``target``, rejecting edges outside the state machine."""
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStateTransition(self.status.value, target.value)
        self.status = target
        self.legal_hold_blocked = target == DeletionStatus.BLOCKED_LEGAL_HOLD
