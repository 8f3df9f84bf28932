"""
Deletion Lifecycle Manager.

Owns deletion requests from creation to purge: the legal hold gate, the
grace period, the scheduled and automatic-retention sweeps, and legal hold
management. Sweeps are idempotent and may run next to live authorization
checks: a request is persisted as ``in_progress`` before any data is purged,
and a request that fails is marked ``failed`` instead of being left behind.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from family_privacy.audit.audit_service import PrivacyAuditService
from family_privacy.config import Settings, get_settings
from family_privacy.core.exceptions import (
    DeletionRequestConflict,
    LegalHoldBlocked,
    NotFound,
    PrivacyGovernanceError,
    StoreUnavailable,
    ValidationError,
)
from family_privacy.lifecycle.purge import PURGEABLE_DATA_TYPES, DataPurger
from family_privacy.models.access_log import (
    ACTIVITY_ACTIONS,
    AccessResult,
    ActorType,
    PrivacyAction,
)
from family_privacy.models.deletion import (
    DeletionRequest,
    DeletionScope,
    DeletionStatus,
)
from family_privacy.models.privacy import (
    LegalHold,
    PrivacySettings,
    default_privacy_settings,
)
from family_privacy.repositories.deletion_repository import DeletionRequestRepository
from family_privacy.repositories.settings_repository import PrivacySettingsRepository
from family_privacy.utils.dates import Clock, ensure_utc, months_before, utc_now
from family_privacy.utils.locks import KeyedLocks
from family_privacy.utils.logging import get_logger
from family_privacy.utils.monitoring import record_deletion_status

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"

# Requests that have not started purging and can still be held or cancelled
_NOT_STARTED = (
    DeletionStatus.PENDING,
    DeletionStatus.SCHEDULED,
    DeletionStatus.BLOCKED_LEGAL_HOLD,
)


class DeletionLifecycleManager:
    """Manages deletion requests, retention sweeps and legal holds."""

    def __init__(
        self,
        deletions: DeletionRequestRepository,
        settings_repository: PrivacySettingsRepository,
        purger: DataPurger,
        audit: PrivacyAuditService,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
        owner_locks: Optional[KeyedLocks] = None,
    ):
        """Initialize the lifecycle manager.

        Args:
            deletions: Deletion request store
            settings_repository: Privacy settings store
            purger: Scope-specific data purger
            audit: Audit service
            settings: Configuration (grace period, defaults)
            clock: Time source
            owner_locks: Per-account locks shared with other settings writers
        """
        self.deletions = deletions
        self.settings_repository = settings_repository
        self.purger = purger
        self.audit = audit
        self.settings = settings or get_settings()
        self._clock = clock

        self._owner_locks = owner_locks if owner_locks is not None else KeyedLocks()
        self._request_locks = KeyedLocks()

    @property
    def grace_period(self) -> timedelta:
        """Delay between a request and its purge."""
        return timedelta(days=self.settings.deletion_grace_days)

    # Deletion requests

    def request_deletion(
        self,
        owner_id: str,
        scope: DeletionScope,
        reason: Optional[str] = None,
        requested_by: Optional[str] = None,
        child_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        data_types: Optional[Iterable[str]] = None,
        automatic: bool = False,
    ) -> DeletionRequest:
        """
        Create a deletion request.

        The request is created in ``blocked_legal_hold`` when a legal hold is in
        force, otherwise it is scheduled after the grace period.

        Args:
            owner_id: Account whose data is deleted
            scope: What to delete
            reason: Reason given for the deletion
            requested_by: Identity asking for the deletion
            child_id: Child to delete (child-specific scope)
            start_date: Start of the range (date-range scope)
            end_date: End of the range (date-range scope)
            data_types: Data types to delete (data-type scope)
            automatic: Whether a retention sweep created the request

        Returns:
            The persisted request

        Raises:
            ValidationError: If the scope or its parameters are invalid
            DeletionRequestConflict: If a request is already outstanding
        """
        try:
            scope = DeletionScope(scope)
        except ValueError as e:
            raise ValidationError(f"Invalid deletion scope: {scope}") from e
        data_types = list(data_types or [])

        with self._owner_locks.hold(owner_id):
            settings = self.settings_repository.get(owner_id)
            self._validate_scope(
                owner_id, scope, settings, child_id, start_date, end_date, data_types
            )

            if any(r.is_outstanding for r in self.deletions.list_for_owner(owner_id)):
                raise DeletionRequestConflict()

            now = self._clock()
            request = DeletionRequest(
                owner_id=owner_id,
                requested_by=requested_by or owner_id,
                scope=scope,
                requested_at=now,
                reason=reason,
                automatic=automatic,
                child_id=child_id,
                start_date=start_date,
                end_date=end_date,
                data_types=sorted(set(data_types)),
            )

            if settings is not None and settings.has_active_legal_hold(now):
                request.transition(DeletionStatus.BLOCKED_LEGAL_HOLD)
            else:
                request.transition(DeletionStatus.SCHEDULED)
                request.scheduled_for = now + self.grace_period

            self.deletions.save(request)

        record_deletion_status(request.status.value)
        logger.info(
            "deletion_requested",
            request_id=request.id,
            owner_id=owner_id,
            scope=scope.value,
            status=request.status.value,
            automatic=automatic,
        )
        self._audit(
            request,
            f"Data deletion requested: {scope.value}, status {request.status.value}",
            actor_id=request.requested_by,
        )
        return request

    def _validate_scope(
        self,
        owner_id: str,
        scope: DeletionScope,
        settings: Optional[PrivacySettings],
        child_id: Optional[str],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        data_types: Optional[Iterable[str]],
    ) -> None:
        if scope == DeletionScope.CHILD_SPECIFIC:
            if not child_id:
                raise ValidationError("Child-specific deletion requires a child_id")
            known = settings is not None and child_id in settings.child_specific
            if not known and not self.purger.child_exists(owner_id, child_id):
                raise ValidationError(f"Unknown child: {child_id}")

        elif scope == DeletionScope.DATE_RANGE:
            if start_date is None or end_date is None:
                raise ValidationError("Date range deletion requires start_date and end_date")
            if ensure_utc(start_date) > ensure_utc(end_date):
                raise ValidationError("Deletion start_date must not be after end_date")

        elif scope == DeletionScope.DATA_TYPE_SPECIFIC:
            requested = set(data_types or [])
            if not requested:
                raise ValidationError("Data type deletion requires at least one data type")
            unknown = sorted(requested - set(PURGEABLE_DATA_TYPES))
            if unknown:
                raise ValidationError(f"Unknown data types: {', '.join(unknown)}")

    def get_deletion_requests(self, owner_id: str) -> List[DeletionRequest]:
        """Get an account's deletion requests, newest first."""
        return self.deletions.list_for_owner(owner_id)

    def cancel_deletion(
        self, owner_id: str, request_id: str, cancelled_by: Optional[str] = None
    ) -> DeletionRequest:
        """
        Cancel a request that has not started purging.

        Raises:
            NotFound: If the account has no such request
            ValidationError: If the request already started or finished
        """
        with self._request_locks.hold(request_id):
            request = self.deletions.get(request_id)
            if request.owner_id != owner_id:
                raise NotFound(f"Deletion request {request_id} not found")
            if request.status not in _NOT_STARTED:
                raise ValidationError(
                    f"Deletion request in status {request.status.value} cannot be cancelled"
                )

            request.transition(DeletionStatus.FAILED)
            request.error = "cancelled by account holder"
            request.completed_at = self._clock()
            self.deletions.save(request)

        record_deletion_status(request.status.value)
        logger.info("deletion_cancelled", request_id=request_id, owner_id=owner_id)
        self._audit(request, "Data deletion cancelled", actor_id=cancelled_by or owner_id)
        return request

    # Sweeps

    def process_scheduled_deletions(self) -> List[DeletionRequest]:
        """Process every scheduled request whose grace period has passed.

        Returns:
            The requests this run moved out of ``scheduled``
        """
        now = self._clock()
        processed = []
        for request in self.deletions.list_by_status(DeletionStatus.SCHEDULED):
            if request.scheduled_for is not None and ensure_utc(request.scheduled_for) > now:
                continue
            try:
                result = self._process_request(request.id)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("deletion_processing_failed", request_id=request.id, error=str(e))
                continue
            if result is not None:
                processed.append(result)

        if processed:
            logger.info("scheduled_deletions_processed", count=len(processed))
        return processed

    def _process_request(self, request_id: str) -> Optional[DeletionRequest]:
        with self._request_locks.hold(request_id, blocking=False) as claimed:
            if not claimed:
                logger.debug("deletion_already_claimed", request_id=request_id)
                return None
            try:
                request = self.deletions.get(request_id)
                if request.status != DeletionStatus.SCHEDULED:
                    return None
                settings = self.settings_repository.get(request.owner_id)
            except PrivacyGovernanceError as e:
                logger.error("deletion_claim_failed", request_id=request_id, error=str(e))
                return None

            now = self._clock()
            if settings is not None and settings.has_active_legal_hold(now):
                return self._block(request)

            request.transition(DeletionStatus.IN_PROGRESS)
            request.started_at = now
            try:
                self.deletions.save(request)
            except StoreUnavailable as e:
                logger.error("deletion_start_not_persisted", request_id=request_id, error=str(e))
                return None
            record_deletion_status(request.status.value)

            return self._execute(request)

    def _execute(self, request: DeletionRequest) -> DeletionRequest:
        try:
            settings = self._ensure_no_hold(request.owner_id)
            affected = self.purger.purge(request)
            if request.scope == DeletionScope.CHILD_SPECIFIC and settings is not None:
                self._forget_child(settings, request.child_id)
        except LegalHoldBlocked:
            return self._block(request)
        except Exception as e:  # pylint: disable=broad-exception-caught
            request.transition(DeletionStatus.FAILED)
            request.error = str(e)
            request.completed_at = self._clock()
            self._save_quietly(request)
            record_deletion_status(request.status.value)
            logger.error(
                "deletion_failed",
                request_id=request.id,
                owner_id=request.owner_id,
                error=str(e),
            )
            self._audit(
                request,
                f"Data deletion failed: {e}",
                result=AccessResult.ERROR,
            )
            return request

        request.affected_records = affected
        request.transition(DeletionStatus.COMPLETED)
        request.completed_at = self._clock()
        self._save_quietly(request)
        record_deletion_status(request.status.value)
        logger.info(
            "deletion_completed",
            request_id=request.id,
            owner_id=request.owner_id,
            affected_records=len(affected),
        )
        self._audit(
            request,
            f"Data deletion executed: {request.scope.value}, "
            f"{len(affected)} records affected",
        )
        return request

    def _ensure_no_hold(self, owner_id: str) -> Optional[PrivacySettings]:
        settings = self.settings_repository.get(owner_id)
        if settings is not None and settings.has_active_legal_hold(self._clock()):
            raise LegalHoldBlocked()
        return settings

    def _forget_child(self, settings: PrivacySettings, child_id: Optional[str]) -> None:
        if child_id in settings.child_specific:
            del settings.child_specific[child_id]
            settings.last_updated = self._clock()
            self.settings_repository.save(settings)

    def _save_quietly(self, request: DeletionRequest) -> None:
        try:
            self.deletions.save(request)
        except StoreUnavailable as e:
            logger.error(
                "deletion_status_not_persisted",
                request_id=request.id,
                status=request.status.value,
                error=str(e),
            )

    def reevaluate_blocked_requests(self) -> List[DeletionRequest]:
        """Re-check the legal hold gate for requests that have not started.

        Blocked requests of accounts with no hold in force resume at
        ``scheduled``; pending or scheduled requests of accounts that acquired
        a hold become blocked.

        Returns:
            The requests whose status changed
        """
        changed = []
        for status in _NOT_STARTED:
            for request in self.deletions.list_by_status(status):
                try:
                    result = self._reevaluate(request.id)
                except PrivacyGovernanceError as e:
                    logger.error(
                        "deletion_reevaluation_failed", request_id=request.id, error=str(e)
                    )
                    continue
                if result is not None:
                    changed.append(result)
        return changed

    def _reevaluate(self, request_id: str) -> Optional[DeletionRequest]:
        with self._request_locks.hold(request_id):
            try:
                request = self.deletions.get(request_id)
                settings = self.settings_repository.get(request.owner_id)
            except PrivacyGovernanceError as e:
                logger.error("deletion_reevaluation_failed", request_id=request_id, error=str(e))
                return None

            held = settings is not None and settings.has_active_legal_hold(self._clock())
            if request.status == DeletionStatus.BLOCKED_LEGAL_HOLD and not held:
                return self._resume(request)
            if request.status in (DeletionStatus.PENDING, DeletionStatus.SCHEDULED) and held:
                return self._block(request)
            return None

    def _block(self, request: DeletionRequest) -> DeletionRequest:
        request.transition(DeletionStatus.BLOCKED_LEGAL_HOLD)
        request.scheduled_for = None
        self.deletions.save(request)
        record_deletion_status(request.status.value)
        logger.info(
            "deletion_blocked_by_legal_hold", request_id=request.id, owner_id=request.owner_id
        )
        self._audit(request, "Data deletion blocked by legal hold", result=AccessResult.DENIED)
        return request

    def _resume(self, request: DeletionRequest) -> DeletionRequest:
        request.transition(DeletionStatus.SCHEDULED)
        request.scheduled_for = self._clock() + self.grace_period
        self.deletions.save(request)
        record_deletion_status(request.status.value)
        logger.info("deletion_resumed", request_id=request.id, owner_id=request.owner_id)
        self._audit(request, "Data deletion rescheduled after legal hold release")
        return request

    def process_automatic_retention(self) -> List[DeletionRequest]:
        """Request deletion for accounts past their retention or inactivity period.

        Returns:
            The requests created by this run
        """
        created = []
        for settings in self.settings_repository.list_with_automatic_deletion():
            try:
                request = self._apply_retention(settings)
            except DeletionRequestConflict:
                continue
            except PrivacyGovernanceError as e:
                logger.error(
                    "automatic_retention_failed", owner_id=settings.owner_id, error=str(e)
                )
                continue
            if request is not None:
                created.append(request)

        if created:
            logger.info("automatic_deletions_requested", count=len(created))
        return created

    def _apply_retention(self, settings: PrivacySettings) -> Optional[DeletionRequest]:
        owner_id = settings.owner_id
        if any(r.is_outstanding for r in self.deletions.list_for_owner(owner_id)):
            return None

        now = self._clock()
        retention = settings.data_retention
        reason = None

        if ensure_utc(settings.created_at) <= months_before(now, retention.retention_period):
            reason = (
                f"Automatic deletion after {retention.retention_period} month "
                "retention period"
            )
        elif retention.delete_after_inactivity:
            last_activity = self.audit.logs.latest_activity(owner_id, ACTIVITY_ACTIONS)
            if last_activity is not None and ensure_utc(last_activity) <= months_before(
                now, retention.inactivity_period
            ):
                reason = (
                    f"Automatic deletion after {retention.inactivity_period} months "
                    "of inactivity"
                )

        if reason is None:
            return None
        return self.request_deletion(
            owner_id,
            DeletionScope.ALL_DATA,
            reason=reason,
            requested_by=SYSTEM_ACTOR,
            automatic=True,
        )

    # Legal holds

    def apply_legal_hold(
        self,
        owner_id: str,
        reason: str,
        applied_by: str,
        expires_at: Optional[datetime] = None,
        affected_data_types: Optional[Iterable[str]] = None,
    ) -> LegalHold:
        """
        Place a legal hold on an account.

        Requests that have not started purging are blocked immediately.

        Raises:
            ValidationError: If the reason is blank or the expiry is in the past
        """
        now = self._clock()
        if not reason.strip():
            raise ValidationError("Legal hold requires a reason")
        if expires_at is not None and ensure_utc(expires_at) <= now:
            raise ValidationError("Legal hold expiry must be in the future")

        hold = LegalHold(
            reason=reason,
            applied_at=now,
            applied_by=applied_by,
            expires_at=expires_at,
            affected_data_types=list(affected_data_types or []),
        )
        with self._owner_locks.hold(owner_id):
            settings = self._settings_or_default(owner_id)
            settings.data_retention.legal_holds.append(hold)
            settings.last_updated = now
            self.settings_repository.save(settings)

        logger.warning("legal_hold_applied", owner_id=owner_id, hold_id=hold.id)
        self.audit.log_action(
            owner_id,
            PrivacyAction.LEGAL_HOLD_CHANGE,
            actor_id=applied_by,
            actor_type=ActorType.SYSTEM,
            resource_type="legal_hold",
            resource_id=hold.id,
            details=f"Legal hold applied: {reason}",
        )

        for request in self.deletions.list_for_owner(owner_id):
            if request.status in (DeletionStatus.PENDING, DeletionStatus.SCHEDULED):
                self._reevaluate(request.id)
        return hold

    def release_legal_hold(self, owner_id: str, hold_id: str, released_by: str) -> LegalHold:
        """
        Release a legal hold.

        Blocked requests resume once no other hold is in force.

        Raises:
            NotFound: If the account has no such hold
        """
        now = self._clock()
        with self._owner_locks.hold(owner_id):
            settings = self.settings_repository.get(owner_id)
            holds = settings.data_retention.legal_holds if settings else []
            hold = next((h for h in holds if h.id == hold_id), None)
            if settings is None or hold is None:
                raise NotFound(f"Legal hold {hold_id} not found")

            hold.is_active = False
            settings.last_updated = now
            self.settings_repository.save(settings)

        logger.warning("legal_hold_released", owner_id=owner_id, hold_id=hold_id)
        self.audit.log_action(
            owner_id,
            PrivacyAction.LEGAL_HOLD_CHANGE,
            actor_id=released_by,
            actor_type=ActorType.SYSTEM,
            resource_type="legal_hold",
            resource_id=hold_id,
            details="Legal hold released",
        )

        for request in self.deletions.list_for_owner(owner_id):
            if request.status == DeletionStatus.BLOCKED_LEGAL_HOLD:
                self._reevaluate(request.id)
        return hold

    def _settings_or_default(self, owner_id: str) -> PrivacySettings:
        settings = self.settings_repository.get(owner_id)
        if settings is not None:
            return settings
        return default_privacy_settings(
            owner_id,
            retention_period=self.settings.default_retention_months,
            inactivity_period=self.settings.default_inactivity_months,
            now=self._clock(),
        )

    def _audit(
        self,
        request: DeletionRequest,
        details: str,
        actor_id: str = SYSTEM_ACTOR,
        result: AccessResult = AccessResult.SUCCESS,
    ) -> None:
        self.audit.log_action(
            request.owner_id,
            PrivacyAction.DELETE_DATA,
            actor_id=actor_id,
            actor_type=ActorType.OWNER if actor_id == request.owner_id else ActorType.SYSTEM,
            resource_type="deletion_request",
            resource_id=request.id,
            result=result,
            details=details,
        )
