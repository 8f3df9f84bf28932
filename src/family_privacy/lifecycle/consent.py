"""
Consent Management.

Consent changes are appended to an immutable history, reflected in the data
sharing flags and persisted before anything else happens. Revocation then
ceases processing in two steps: communication classes covered by the consent
are suppressed locally right away, and the change is propagated to external
sinks in the background with bounded retry. Propagation failures are logged
and never reach the caller.
"""

import threading
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Set, Union

from family_privacy.audit.audit_service import PrivacyAuditService
from family_privacy.config import Settings, get_settings
from family_privacy.core.exceptions import ValidationError
from family_privacy.interfaces.notifications import NotificationSink
from family_privacy.models.access_log import ActorType, PrivacyAction
from family_privacy.models.privacy import (
    ESSENTIAL_COMMUNICATIONS,
    CommunicationRecord,
    CommunicationType,
    ConsentRecord,
    ConsentType,
    PrivacySettings,
    default_privacy_settings,
)
from family_privacy.repositories.settings_repository import PrivacySettingsRepository
from family_privacy.utils.dates import Clock, utc_now
from family_privacy.utils.locks import KeyedLocks
from family_privacy.utils.logging import get_logger
from family_privacy.utils.monitoring import record_propagation
from family_privacy.utils.retry import retry_with_backoff

logger = get_logger(__name__)

# Communication classes that stop when a consent is revoked
CONSENT_COMMUNICATIONS: Dict[ConsentType, FrozenSet[CommunicationType]] = {
    ConsentType.RESEARCH_PARTICIPATION: frozenset(),
    ConsentType.ANONYMIZED_DATA_SHARING: frozenset(),
    ConsentType.MARKETING_CONSENT: frozenset(
        {CommunicationType.MARKETING_EMAILS, CommunicationType.THIRD_PARTY_MARKETING}
    ),
    ConsentType.THIRD_PARTY_INTEGRATION: frozenset(
        {CommunicationType.THIRD_PARTY_MARKETING}
    ),
    ConsentType.DATA_PROCESSING: frozenset(),
}

# Data sharing flag backing each consent type
_CONSENT_FLAGS: Dict[ConsentType, str] = {
    ConsentType.RESEARCH_PARTICIPATION: "research_participation",
    ConsentType.ANONYMIZED_DATA_SHARING: "anonymized_data_sharing",
    ConsentType.MARKETING_CONSENT: "marketing_consent",
}


def _as_consent_type(value: Union[ConsentType, str]) -> ConsentType:
    try:
        return ConsentType(value)
    except ValueError as e:
        raise ValidationError(f"Unknown consent type: {value}") from e


class CommunicationSuppressor:
    """In-process block list of communication classes per account.

    Takes effect as soon as a consent is revoked, before the persisted
    preferences reach other readers. Essential communications are never
    suppressed.
    """

    def __init__(self) -> None:
        """Initialize the suppressor."""
        self._suppressed: Dict[str, Set[CommunicationType]] = defaultdict(set)
        self._lock = threading.Lock()

    def suppress(self, owner_id: str, types: Sequence[CommunicationType]) -> None:
        """Block communication classes for an account."""
        blocked = set(types) - ESSENTIAL_COMMUNICATIONS
        if not blocked:
            return
        with self._lock:
            self._suppressed[owner_id] |= blocked
        logger.info(
            "communications_suppressed",
            owner_id=owner_id,
            types=sorted(t.value for t in blocked),
        )

    def lift(self, owner_id: str, types: Sequence[CommunicationType]) -> None:
        """Remove communication classes from an account's block list."""
        with self._lock:
            self._suppressed[owner_id] -= set(types)

    def is_suppressed(self, owner_id: str, communication_type: CommunicationType) -> bool:
        """Check whether a communication class is blocked for an account."""
        with self._lock:
            return communication_type in self._suppressed.get(owner_id, set())


class ConsentPropagator:
    """Fire-and-forget delivery of consent changes to external sinks."""

    def __init__(
        self,
        sinks: Sequence[NotificationSink],
        settings: Optional[Settings] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Initialize the propagator.

        Args:
            sinks: Destinations for consent change messages
            settings: Retry and worker configuration
            sleep: Sleep used between retries, replaceable in tests
        """
        self.sinks = list(sinks)
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.propagation_workers,
            thread_name_prefix="consent-propagation",
        )

    def propagate(self, message_type: str, payload: Dict[str, Any]) -> List[Future]:
        """Queue a message for every sink and return without waiting."""
        return [
            self._executor.submit(self._deliver, sink, message_type, payload)
            for sink in self.sinks
        ]

    def _deliver(self, sink: NotificationSink, message_type: str, payload: Dict[str, Any]) -> bool:
        retry_kwargs: Dict[str, Any] = {
            "max_retries": self.settings.propagation_max_retries,
            "initial_delay": self.settings.propagation_initial_delay,
            "max_delay": self.settings.propagation_max_delay,
            "on_retry": lambda attempt, error, delay: record_propagation(sink.name, "retried"),
        }
        if self._sleep is not None:
            retry_kwargs["sleep"] = self._sleep
        send = retry_with_backoff(**retry_kwargs)(sink.send)

        try:
            send(message_type, payload)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error(
                "consent_propagation_failed",
                sink=sink.name,
                message_type=message_type,
                owner_id=payload.get("owner_id"),
                error=str(e),
            )
            record_propagation(sink.name, "failed")
            return False

        logger.info(
            "consent_propagated",
            sink=sink.name,
            message_type=message_type,
            owner_id=payload.get("owner_id"),
        )
        record_propagation(sink.name, "delivered")
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker pool."""
        self._executor.shutdown(wait=wait)


class ConsentManager:
    """Grants and revokes data sharing consent."""

    def __init__(
        self,
        settings_repository: PrivacySettingsRepository,
        audit: PrivacyAuditService,
        suppressor: CommunicationSuppressor,
        propagator: ConsentPropagator,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
        owner_locks: Optional[KeyedLocks] = None,
    ):
        """Initialize the consent manager."""
        self.settings_repository = settings_repository
        self.audit = audit
        self.suppressor = suppressor
        self.propagator = propagator
        self.settings = settings or get_settings()
        self._clock = clock
        self._owner_locks = owner_locks if owner_locks is not None else KeyedLocks()

    def revoke_consent(
        self,
        owner_id: str,
        consent_type: Union[ConsentType, str],
        revoked_by: Optional[str] = None,
        integration: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ConsentRecord:
        """
        Revoke a consent and cease the processing it covered.

        Revoking third-party integration consent without naming an integration
        revokes every integration.

        Returns:
            The appended consent record

        Raises:
            ValidationError: If the consent type is unknown
        """
        consent_type = _as_consent_type(consent_type)
        record = self._record_change(
            owner_id, consent_type, False, revoked_by, integration, ip_address, user_agent
        )

        self.suppressor.suppress(owner_id, sorted(CONSENT_COMMUNICATIONS[consent_type]))
        self.propagator.propagate(
            "consent_revoked",
            {
                "owner_id": owner_id,
                "consent_type": consent_type.value,
                "integration": integration,
                "timestamp": record.timestamp.isoformat(),
            },
        )
        return record

    def grant_consent(
        self,
        owner_id: str,
        consent_type: Union[ConsentType, str],
        granted_by: Optional[str] = None,
        integration: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ConsentRecord:
        """
        Grant a consent.

        Communication preferences are not switched back on; the account holder
        re-enables them through the settings.

        Returns:
            The appended consent record

        Raises:
            ValidationError: If the consent type is unknown
        """
        consent_type = _as_consent_type(consent_type)
        record = self._record_change(
            owner_id, consent_type, True, granted_by, integration, ip_address, user_agent
        )
        self.suppressor.lift(owner_id, sorted(CONSENT_COMMUNICATIONS[consent_type]))
        self.propagator.propagate(
            "consent_granted",
            {
                "owner_id": owner_id,
                "consent_type": consent_type.value,
                "integration": integration,
                "timestamp": record.timestamp.isoformat(),
            },
        )
        return record

    def _record_change(
        self,
        owner_id: str,
        consent_type: ConsentType,
        granted: bool,
        actor_id: Optional[str],
        integration: Optional[str],
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> ConsentRecord:
        actor_id = actor_id or owner_id
        now = self._clock()

        with self._owner_locks.hold(owner_id):
            settings = self._settings_or_default(owner_id)
            record = ConsentRecord(
                consent_type=consent_type,
                granted=granted,
                timestamp=now,
                ip_address=ip_address,
                user_agent=user_agent,
                version=str(settings.version),
            )
            sharing = settings.data_sharing
            sharing.consent_history.append(record)

            if consent_type in _CONSENT_FLAGS:
                setattr(sharing, _CONSENT_FLAGS[consent_type], granted)
            elif consent_type == ConsentType.THIRD_PARTY_INTEGRATION:
                if integration:
                    sharing.third_party_integrations[integration] = granted
                elif not granted:
                    sharing.third_party_integrations = {
                        name: False for name in sharing.third_party_integrations
                    }

            if not granted:
                self._disable_communications(settings, consent_type, actor_id)

            settings.version += 1
            settings.last_updated = now
            self.settings_repository.save(settings)

        action = "granted" if granted else "revoked"
        logger.info(
            f"consent_{action}",
            owner_id=owner_id,
            consent_type=consent_type.value,
            integration=integration,
        )
        self.audit.log_action(
            owner_id,
            PrivacyAction.CONSENT_CHANGE,
            actor_id=actor_id,
            actor_type=ActorType.OWNER if actor_id == owner_id else ActorType.SYSTEM,
            resource_type="consent",
            resource_id=consent_type.value,
            ip_address=ip_address,
            user_agent=user_agent,
            details=f"Consent {action} for {consent_type.value}"
            + (f" ({integration})" if integration else ""),
        )
        return record

    def _disable_communications(
        self, settings: PrivacySettings, consent_type: ConsentType, actor_id: str
    ) -> None:
        communications = settings.communications
        for communication_type in sorted(CONSENT_COMMUNICATIONS[consent_type]):
            if not communications.is_enabled(communication_type):
                continue
            setattr(communications, communication_type.value, False)
            communications.communication_history.append(
                CommunicationRecord(
                    type=communication_type,
                    enabled=False,
                    changed_at=self._clock(),
                    changed_by=actor_id,
                    reason=f"Consent revoked: {consent_type.value}",
                )
            )

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
