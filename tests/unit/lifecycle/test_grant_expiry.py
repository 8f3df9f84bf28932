"""Tests for the grant expiry sweep."""

from datetime import timedelta

import pytest

from family_privacy.models.access_log import ActorType, LogFilters, PrivacyAction
from family_privacy.models.privacy import Permission


@pytest.fixture
def provider_grant(governance, owner_id, owner_settings, clock):
    """Grant a provider access for one day."""
    return governance.privacy.grant_provider_access(
        owner_id,
        "dr-lee",
        "Dr. Lee",
        [Permission.VIEW_VITALS],
        expires_at=clock() + timedelta(days=1),
    )


class TestGrantExpirySweep:
    """Marking expired grants inactive."""

    def test_nothing_expired(self, governance, provider_grant, temporary_grant, family_grant):
        """Test live grants are left alone."""
        assert governance.grant_expiry.mark_expired_grants() == []

    @pytest.mark.audit_required
    def test_expired_grants_marked_and_audited(
        self, governance, owner_id, provider_grant, temporary_grant, family_grant, clock
    ):
        """Test expired provider and temporary grants are revoked by the system."""
        clock.advance(days=8)

        expired = governance.grant_expiry.mark_expired_grants()

        assert {g.id for g in expired} == {provider_grant.id, temporary_grant.id}
        stored = governance.grant_repository.get("provider", provider_grant.id)
        assert stored.is_active is False
        assert stored.revoked_by == "system"
        assert stored.revoked_at == clock()
        entries = governance.audit.get_access_logs(
            owner_id, LogFilters(action=PrivacyAction.REVOKE_ACCESS)
        )
        assert len(entries) == 2
        assert all(e.actor_type == ActorType.SYSTEM for e in entries)
        # Family grants never expire
        assert governance.grant_repository.get("family_member", family_grant.id).is_active

    def test_exhausted_temporary_grant_marked(self, governance, owner_id, temporary_grant):
        """Test used-up temporary grants are swept before expiry."""
        governance.privacy.record_grant_use(owner_id, temporary_grant.id)
        governance.privacy.record_grant_use(owner_id, temporary_grant.id)

        expired = governance.grant_expiry.mark_expired_grants()

        assert [g.id for g in expired] == [temporary_grant.id]
        entry = governance.audit.get_access_logs(
            owner_id, LogFilters(action=PrivacyAction.REVOKE_ACCESS)
        )[0]
        assert entry.details == "Access limit reached"

    def test_sweep_is_idempotent(self, governance, provider_grant, clock):
        """Test already swept grants are not swept again."""
        clock.advance(days=2)
        governance.grant_expiry.mark_expired_grants()

        assert governance.grant_expiry.mark_expired_grants() == []
