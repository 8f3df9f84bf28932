"""Tests for the privacy audit trail."""

from datetime import timedelta

import pytest

from family_privacy.audit import PrivacyAuditService
from family_privacy.config import Settings
from family_privacy.interfaces.store import AUDIT_FAILURES, PRIVACY_AUDIT_LOGS
from family_privacy.models.access_log import (
    AccessResult,
    ActorType,
    LogFilters,
    PrivacyAction,
)
from family_privacy.repositories import AccessLogRepository
from tests.mocks import FailingDocumentStore


@pytest.fixture
def audit(store, settings, clock):
    """Create an audit service over the in-memory store."""
    return PrivacyAuditService(AccessLogRepository(store), settings=settings, clock=clock)


class TestLogAction:
    """Appending entries."""

    @pytest.mark.audit_required
    def test_entry_is_stored(self, audit, store, clock):
        """Test an action is appended with the clock's timestamp."""
        entry = audit.log_action(
            "parent-001",
            PrivacyAction.VIEW_DATA,
            actor_id="caregiver-001",
            actor_name="Casey Carer",
            actor_type=ActorType.FAMILY_MEMBER,
            resource_type="symptoms",
            resource_id="sym-1",
            child_id="child-1",
            ip_address="10.0.0.5",
        )

        assert entry is not None
        assert entry.timestamp == clock()
        assert store.ids(PRIVACY_AUDIT_LOGS) == [entry.id]

    def test_actor_defaults_to_owner(self, audit):
        """Test entries without an actor are attributed to the owner."""
        entry = audit.log_action("parent-001", PrivacyAction.LOGIN)

        assert entry.actor_id == "parent-001"
        assert entry.actor_type == ActorType.OWNER
        assert entry.result == AccessResult.SUCCESS

    @pytest.mark.audit_required
    def test_write_failure_is_swallowed_and_escalated(self, settings, clock):
        """Test a failed write returns None and lands in the failure channel."""
        store = FailingDocumentStore(error=ConnectionError("disk full"))
        store.fail("put", PRIVACY_AUDIT_LOGS)
        audit = PrivacyAuditService(AccessLogRepository(store), settings=settings, clock=clock)

        result = audit.log_action("parent-001", PrivacyAction.EXPORT_DATA)

        assert result is None
        failures = store.query(AUDIT_FAILURES)
        assert len(failures) == 1
        assert "disk full" in failures[0]["error"]
        assert failures[0]["entry"]["owner_id"] == "parent-001"

    def test_failure_channel_outage_is_swallowed(self, settings, clock):
        """Test nothing raises even when the failure record cannot be stored."""
        store = FailingDocumentStore()
        store.fail("put")
        audit = PrivacyAuditService(AccessLogRepository(store), settings=settings, clock=clock)

        assert audit.log_action("parent-001", PrivacyAction.VIEW_DATA) is None


class TestGetAccessLogs:
    """Reading the trail."""

    @pytest.fixture
    def populated(self, audit, clock):
        """Write a day of mixed entries for two accounts."""
        for hour in range(5):
            audit.log_action(
                "parent-001",
                PrivacyAction.VIEW_DATA,
                actor_id=f"user-{hour % 2}",
                resource_type="symptoms",
                result=AccessResult.DENIED if hour == 4 else AccessResult.SUCCESS,
            )
            clock.advance(hours=1)
        audit.log_action("parent-002", PrivacyAction.VIEW_DATA)
        return audit

    def test_newest_first_and_owner_scoped(self, populated):
        """Test entries come back newest first for the owner only."""
        logs = populated.get_access_logs("parent-001")

        assert len(logs) == 5
        assert all(entry.owner_id == "parent-001" for entry in logs)
        assert logs[0].timestamp > logs[-1].timestamp

    def test_filters(self, populated, clock):
        """Test result, actor and date filters."""
        denied = populated.get_access_logs(
            "parent-001", LogFilters(result=AccessResult.DENIED)
        )
        by_actor = populated.get_access_logs("parent-001", LogFilters(actor_id="user-1"))
        recent = populated.get_access_logs(
            "parent-001", LogFilters(start_date=clock() - timedelta(hours=2))
        )

        assert len(denied) == 1
        assert len(by_actor) == 2
        assert len(recent) == 2

    def test_limit_is_capped(self, store, clock):
        """Test the configured query cap bounds every read."""
        audit = PrivacyAuditService(
            AccessLogRepository(store),
            settings=Settings(_env_file=None, audit_query_limit=3),
            clock=clock,
        )
        for _ in range(5):
            audit.log_action("parent-001", PrivacyAction.VIEW_DATA)

        assert len(audit.get_access_logs("parent-001")) == 3
        assert len(audit.get_access_logs("parent-001", limit=2)) == 2
        assert len(audit.get_access_logs("parent-001", limit=50)) == 3
