"""
Component wiring.

Builds every governance component around the collaborators supplied by the
host application. Components receive their dependencies through their
constructors; nothing is shared through module state.
"""

import importlib
from typing import Callable, Optional, Sequence

from family_privacy.audit import (
    AuditFailureChannel,
    AuditReportGenerator,
    PrivacyAuditService,
    SuspiciousActivityDetector,
)
from family_privacy.authorization import (
    AccessGuard,
    AuthorizationEngine,
    ChildPrivacyConflictResolver,
)
from family_privacy.config import Settings, get_settings
from family_privacy.core.exceptions import PrivacyGovernanceError
from family_privacy.interfaces import (
    DocumentStore,
    ExportRenderer,
    IdentityProvider,
    NotificationSink,
    VerifiedIdentity,
)
from family_privacy.lifecycle import (
    CommunicationSuppressor,
    ConsentManager,
    ConsentPropagator,
    DataPurger,
    DeletionLifecycleManager,
    GrantExpirySweeper,
)
from family_privacy.models.access_log import ActorType, PrivacyAction
from family_privacy.repositories import (
    AccessLogRepository,
    DeletionRequestRepository,
    GrantRepository,
    PrivacySettingsRepository,
)
from family_privacy.services import PrivacySettingsService
from family_privacy.utils.dates import Clock, utc_now
from family_privacy.utils.locks import KeyedLocks
from family_privacy.utils.logging import get_logger, setup_logging
from family_privacy.utils.rate_limiter import FixedWindowRateLimiter

logger = get_logger(__name__)


class PrivacyGovernance:
    """The privacy and access governance engine, fully wired."""

    def __init__(
        self,
        store: DocumentStore,
        sinks: Sequence[NotificationSink] = (),
        identity_provider: Optional[IdentityProvider] = None,
        renderer: Optional[ExportRenderer] = None,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Wire the components.

        Args:
            store: Document store holding settings, grants, requests and logs
            sinks: Consent propagation destinations
            identity_provider: Authentication provider
            renderer: Audit report renderer
            settings: Configuration
            clock: Time source shared by every component
            sleep: Sleep used between propagation retries
        """
        self.settings = settings or get_settings()
        self.store = store
        self.identity_provider = identity_provider
        self.clock = clock

        # Every component that rewrites an account's settings shares these locks
        self.owner_locks = KeyedLocks()

        # Repositories
        self.settings_repository = PrivacySettingsRepository(store)
        self.grant_repository = GrantRepository(store)
        self.deletion_repository = DeletionRequestRepository(store)
        self.log_repository = AccessLogRepository(store)

        # Audit
        self.audit = PrivacyAuditService(
            self.log_repository,
            AuditFailureChannel(store, clock),
            self.settings,
            clock,
        )
        self.detector = SuspiciousActivityDetector(self.log_repository, self.settings, clock)
        self.reports = AuditReportGenerator(self.audit, self.detector, renderer, clock)

        # Authorization
        self.resolver = ChildPrivacyConflictResolver()
        self.engine = AuthorizationEngine(
            self.grant_repository,
            self.settings_repository,
            self.deletion_repository,
            self.resolver,
            clock,
        )

        # Consent
        self.suppressor = CommunicationSuppressor()
        self.propagator = ConsentPropagator(sinks, self.settings, sleep=sleep)
        self.consent = ConsentManager(
            self.settings_repository,
            self.audit,
            self.suppressor,
            self.propagator,
            self.settings,
            clock,
            owner_locks=self.owner_locks,
        )
        self.privacy = PrivacySettingsService(
            self.settings_repository,
            self.grant_repository,
            self.engine,
            self.audit,
            self.consent,
            self.settings,
            clock,
            owner_locks=self.owner_locks,
        )
        self.rate_limiter = FixedWindowRateLimiter(
            self.settings.rate_limits,
            window_seconds=self.settings.rate_limit_window_seconds,
        )
        self.guard = AccessGuard(
            self.engine,
            self.audit,
            self.rate_limiter,
            record_grant_use=self.privacy.record_grant_use,
        )

        # Lifecycle
        self.lifecycle = DeletionLifecycleManager(
            self.deletion_repository,
            self.settings_repository,
            DataPurger(store),
            self.audit,
            self.settings,
            clock,
            owner_locks=self.owner_locks,
        )
        self.grant_expiry = GrantExpirySweeper(self.grant_repository, self.audit, clock)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PrivacyGovernance":
        """Build the engine around the store named by ``store_factory``.

        Raises:
            PrivacyGovernanceError: If no store factory is configured
        """
        settings = settings or get_settings()
        setup_logging(settings)
        if not settings.store_factory:
            raise PrivacyGovernanceError(
                "No document store configured (set PRIVACY_STORE_FACTORY)",
                "STORE_NOT_CONFIGURED",
            )
        module_name, _, attribute = settings.store_factory.replace(":", ".").rpartition(".")
        factory = getattr(importlib.import_module(module_name), attribute)
        return cls(factory(), settings=settings)

    def authenticate(self, token: str, ip_address: Optional[str] = None) -> VerifiedIdentity:
        """
        Verify a token and record the login on the user's own account.

        Raises:
            PrivacyGovernanceError: If no identity provider is configured
            AuthorizationDenied: If the token is rejected
        """
        if self.identity_provider is None:
            raise PrivacyGovernanceError(
                "No identity provider configured", "IDENTITY_NOT_CONFIGURED"
            )
        identity = self.identity_provider.verify(token)
        self.audit.log_action(
            identity.user_id,
            PrivacyAction.LOGIN,
            actor_id=identity.user_id,
            actor_name=identity.display_name,
            actor_type=ActorType.OWNER,
            resource_type="session",
            ip_address=ip_address,
        )
        return identity

    def shutdown(self) -> None:
        """Stop background propagation workers."""
        self.propagator.shutdown(wait=True)
        logger.info("privacy_governance_shutdown")
