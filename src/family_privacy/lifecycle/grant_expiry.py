"""Periodic sweep marking expired and used-up grants inactive."""

from typing import List

from family_privacy.audit.audit_service import PrivacyAuditService
from family_privacy.core.exceptions import PrivacyGovernanceError
from family_privacy.models.access_log import ActorType, PrivacyAction
from family_privacy.models.grants import GRANT_COLLECTIONS, AccessGrant, TemporaryGrant
from family_privacy.repositories.grant_repository import GrantRepository
from family_privacy.utils.dates import Clock, utc_now
from family_privacy.utils.logging import get_logger

logger = get_logger(__name__)

SWEPT_KINDS = ("provider", "temporary")


class GrantExpirySweeper:
    """Persists and audits the automatic end of time-bounded grants.

    Expired grants already confer nothing at read time; the sweep only records
    the revocation.
    """

    def __init__(
        self, grants: GrantRepository, audit: PrivacyAuditService, clock: Clock = utc_now
    ):
        """Initialize the sweeper."""
        self.grants = grants
        self.audit = audit
        self._clock = clock

    def mark_expired_grants(self) -> List[AccessGrant]:
        """Mark expired provider and temporary grants inactive.

        Returns:
            The grants marked inactive by this run
        """
        now = self._clock()
        expired: List[AccessGrant] = []

        for kind in SWEPT_KINDS:
            for grant in self.grants.list_active(kind):
                exhausted = isinstance(grant, TemporaryGrant) and grant.is_exhausted()
                if not (grant.is_expired(now) or exhausted):
                    continue

                grant.is_active = False
                grant.revoked_at = now
                grant.revoked_by = "system"
                try:
                    self.grants.save(grant)
                except PrivacyGovernanceError as e:
                    logger.error("grant_expiry_not_persisted", grant_id=grant.id, error=str(e))
                    continue

                expired.append(grant)
                self.audit.log_action(
                    grant.owner_id,
                    PrivacyAction.REVOKE_ACCESS,
                    actor_id="system",
                    actor_name="System",
                    actor_type=ActorType.SYSTEM,
                    resource_type=GRANT_COLLECTIONS[kind],
                    resource_id=grant.id,
                    details=(
                        "Access expired automatically"
                        if not exhausted
                        else "Access limit reached"
                    ),
                )

        if expired:
            logger.info("expired_grants_marked", count=len(expired))
        return expired
