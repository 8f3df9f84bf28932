"""Secondary escalation channel for audit writes that fail."""

from typing import Any, Dict, Optional

from family_privacy.interfaces.store import AUDIT_FAILURES, DocumentStore
from family_privacy.models.access_log import AccessLog
from family_privacy.utils.dates import Clock, utc_now
from family_privacy.utils.logging import AUDIT_FAILURE_LOGGER, get_logger
from family_privacy.utils.monitoring import record_audit_failure

failure_logger = get_logger(AUDIT_FAILURE_LOGGER)


class AuditFailureChannel:
    """Records audit entries that could not be written to the audit trail.

    The channel logs to the dedicated ``audit.failures`` logger, increments the
    audit failure counter and, when a store is available, tries to keep a copy
    of the lost entry in the ``audit_failures`` collection. None of these steps
    raise.
    """

    def __init__(self, store: Optional[DocumentStore] = None, clock: Clock = utc_now):
        """Initialize the channel.

        Args:
            store: Store for best-effort failure records
            clock: Time source for failure timestamps
        """
        self.store = store
        self._clock = clock

    def escalate(self, entry: AccessLog, error: BaseException) -> None:
        """Escalate a failed audit write."""
        record_audit_failure()
        failure_logger.critical(
            "audit_write_failed",
            log_id=entry.id,
            owner_id=entry.owner_id,
            actor_id=entry.actor_id,
            action=entry.action.value,
            result=entry.result.value,
            error=str(error),
            error_type=type(error).__name__,
        )

        if self.store is None:
            return

        document: Dict[str, Any] = {
            "id": entry.id,
            "failed_at": self._clock().isoformat(),
            "error": str(error),
            "entry": entry.model_dump(mode="json"),
        }
        try:
            self.store.put(AUDIT_FAILURES, entry.id, document)
        except Exception as e:  # pylint: disable=broad-exception-caught
            failure_logger.error(
                "audit_failure_record_not_stored", log_id=entry.id, error=str(e)
            )
