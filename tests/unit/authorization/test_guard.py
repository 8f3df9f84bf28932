"""Tests for the access guard: rate limiting, decisions and their audit entries."""

import pytest

from family_privacy.authorization import AccessContext
from family_privacy.config import Settings
from family_privacy.container import PrivacyGovernance
from family_privacy.core.exceptions import AuthorizationDenied, RateLimitExceeded
from family_privacy.interfaces.store import AUDIT_FAILURES, PRIVACY_AUDIT_LOGS
from family_privacy.models.access_log import AccessResult, ActorType, LogFilters, PrivacyAction
from family_privacy.models.privacy import FamilyRole, Permission
from tests.mocks import FailingDocumentStore


def _check_logs(governance, owner_id):
    return governance.audit.get_access_logs(
        owner_id, LogFilters(resource_type="symptoms")
    )


class TestAuditedChecks:
    """Every check writes exactly one entry."""

    @pytest.mark.audit_required
    def test_allowed_check_logs_success(self, governance, owner_id, family_grant):
        """Test an allowed access is logged as a success."""
        context = AccessContext(
            actor_name="Casey Carer", ip_address="10.0.0.5", session_id="s-1"
        )

        decision = governance.guard.check(
            "caregiver-001",
            owner_id,
            Permission.VIEW_SYMPTOMS,
            resource_type="symptoms",
            resource_id="sym-1",
            context=context,
        )

        assert decision.allowed is True
        logs = _check_logs(governance, owner_id)
        assert len(logs) == 1
        entry = logs[0]
        assert entry.result == AccessResult.SUCCESS
        assert entry.action == PrivacyAction.VIEW_DATA
        assert entry.actor_id == "caregiver-001"
        assert entry.actor_type == ActorType.FAMILY_MEMBER
        assert entry.actor_name == "Casey Carer"
        assert entry.ip_address == "10.0.0.5"
        assert entry.resource_id == "sym-1"

    @pytest.mark.audit_required
    def test_denied_check_logs_denied(self, governance, owner_id, owner_settings):
        """Test a denial is logged as denied."""
        decision = governance.guard.check(
            "stranger", owner_id, Permission.VIEW_SYMPTOMS, resource_type="symptoms"
        )

        assert decision.allowed is False
        logs = _check_logs(governance, owner_id)
        assert [entry.result for entry in logs] == [AccessResult.DENIED]

    @pytest.mark.audit_required
    def test_one_entry_per_check(self, governance, owner_id, family_grant, restricted_child):
        """Test mixed outcomes each leave exactly one entry."""
        guard = governance.guard
        guard.check("caregiver-001", owner_id, Permission.VIEW_SYMPTOMS, resource_type="symptoms")
        guard.check(
            "caregiver-001",
            owner_id,
            Permission.VIEW_SYMPTOMS,
            resource_type="symptoms",
            child_id="child-1",
        )
        guard.check(owner_id, owner_id, Permission.EDIT_SYMPTOMS, resource_type="symptoms")

        results = sorted(entry.result.value for entry in _check_logs(governance, owner_id))
        assert results == ["denied", "success", "success"]

    @pytest.mark.audit_required
    def test_multi_child_check_lists_children(
        self, governance, owner_id, family_grant, restricted_child
    ):
        """Test multi-child checks record the children involved."""
        decision = governance.guard.check_multi_child(
            "caregiver-001",
            owner_id,
            Permission.VIEW_SYMPTOMS,
            ["child-2", "child-1"],
            resource_type="symptoms",
        )

        assert decision.allowed is False
        entry = _check_logs(governance, owner_id)[0]
        assert entry.result == AccessResult.DENIED
        assert "Children: child-1, child-2" in entry.details

    def test_export_uses_export_action(self, governance, owner_id):
        """Test the action is derived from the permission class."""
        governance.guard.check(owner_id, owner_id, Permission.EXPORT_DATA, resource_type="symptoms")

        assert _check_logs(governance, owner_id)[0].action == PrivacyAction.EXPORT_DATA

    def test_require_raises_on_denial(self, governance, owner_id, owner_settings):
        """Test require turns denials into exceptions."""
        with pytest.raises(AuthorizationDenied):
            governance.guard.require("stranger", owner_id, Permission.VIEW_NOTES)

    @pytest.mark.hipaa_required
    def test_temporary_grant_counts_uses(self, governance, owner_id, temporary_grant):
        """Test each allowed access uses up one temporary access."""
        guard = governance.guard

        assert guard.check("sitter-001", owner_id, Permission.VIEW_SYMPTOMS).allowed
        assert guard.check("sitter-001", owner_id, Permission.VIEW_SYMPTOMS).allowed
        third = guard.check("sitter-001", owner_id, Permission.VIEW_SYMPTOMS)

        assert third.allowed is False
        stored = governance.grant_repository.get("temporary", temporary_grant.id)
        assert stored.access_count == 2
        assert stored.last_accessed is not None


class TestRateLimiting:
    """Requests over the limit are rejected and logged."""

    @pytest.fixture
    def limited(self, store, clock):
        """Create an engine allowing two reads per window."""
        limited_settings = Settings(
            _env_file=None,
            rate_limits={"read": 2, "write": 2, "export": 1, "admin": 1},
        )
        governance = PrivacyGovernance(
            store, settings=limited_settings, clock=clock, sleep=lambda _: None
        )
        yield governance
        governance.shutdown()

    @pytest.mark.audit_required
    def test_third_read_is_rate_limited(self, limited):
        """Test the limit is enforced per requester and action class."""
        owner_id = "parent-001"
        limited.privacy.grant_family_access(owner_id, "caregiver-001", FamilyRole.CAREGIVER)
        guard = limited.guard

        guard.check("caregiver-001", owner_id, Permission.VIEW_SYMPTOMS, resource_type="symptoms")
        guard.check("caregiver-001", owner_id, Permission.VIEW_NOTES, resource_type="symptoms")
        limited_decision = guard.check(
            "caregiver-001", owner_id, Permission.VIEW_VITALS, resource_type="symptoms"
        )

        assert limited_decision.allowed is False
        assert limited_decision.rate_limited is True
        assert limited_decision.actor_type == ActorType.FAMILY_MEMBER
        # Writes have their own window
        assert guard.check("caregiver-001", owner_id, Permission.EDIT_NOTES).allowed
        logs = _check_logs(limited, owner_id)
        assert len(logs) == 3
        assert sorted(entry.result.value for entry in logs) == ["denied", "success", "success"]

        with pytest.raises(RateLimitExceeded):
            guard.require("caregiver-001", owner_id, Permission.VIEW_FILES)


class TestAuditFailure:
    """Audit write failures never change the decision."""

    @pytest.mark.audit_required
    def test_failed_audit_write_is_escalated(self, settings, clock):
        """Test a lost audit entry is kept in the failure channel."""
        store = FailingDocumentStore()
        governance = PrivacyGovernance(store, settings=settings, clock=clock, sleep=lambda _: None)
        try:
            store.fail("put", PRIVACY_AUDIT_LOGS)

            decision = governance.guard.check("parent-001", "parent-001", Permission.VIEW_NOTES)

            assert decision.allowed is True
            assert store.count(PRIVACY_AUDIT_LOGS) == 0
            failures = store.query(AUDIT_FAILURES)
            assert len(failures) == 1
            assert failures[0]["entry"]["action"] == "view_data"
        finally:
            governance.shutdown()
