"""Tests for the child privacy conflict resolver."""

from itertools import permutations

import pytest

from family_privacy.authorization import ChildPrivacyConflictResolver
from family_privacy.models.privacy import (
    ChildPrivacySettings,
    CommunicationType,
    DataRetentionOverride,
    Permission,
    PrivacySettings,
)

REQUESTER = "caregiver-001"
REQUESTED = frozenset(
    {Permission.VIEW_SYMPTOMS, Permission.VIEW_NOTES, Permission.EDIT_NOTES}
)


@pytest.fixture
def resolver():
    """Create a resolver."""
    return ChildPrivacyConflictResolver()


@pytest.fixture
def family():
    """Create family settings with three differently configured children."""
    settings = PrivacySettings(owner_id="parent-001")
    settings.data_retention.retention_period = 60
    settings.child_specific = {
        "restricted": ChildPrivacySettings(
            child_id="restricted",
            restricted_access=True,
            allowed_users={"grandma-001"},
            inherit_from_parent=False,
            communication_restrictions={CommunicationType.MARKETING_EMAILS},
            data_retention_override=DataRetentionOverride(retention_period=24),
        ),
        "custom": ChildPrivacySettings(
            child_id="custom",
            inherit_from_parent=False,
            custom_permissions={REQUESTER: {Permission.VIEW_SYMPTOMS}},
            communication_restrictions={CommunicationType.SMS_NOTIFICATIONS},
            data_retention_override=DataRetentionOverride(
                retention_period=36, automatic_deletion=True
            ),
        ),
        "inheriting": ChildPrivacySettings(
            child_id="inheriting",
            restricted_access=True,
            inherit_from_parent=True,
            communication_restrictions={CommunicationType.EMAIL_NOTIFICATIONS},
            data_retention_override=DataRetentionOverride(retention_period=12),
        ),
    }
    return settings


class TestSingleChild:
    """Resolution for one child."""

    def test_child_without_settings_uses_family(self, resolver, family):
        """Test unknown children fall back to family settings."""
        resolution = resolver.resolve_child_vs_family(
            resolver.child_settings(family, "unknown"), REQUESTER, REQUESTED
        )

        assert resolution.source == "family"
        assert resolution.allowed_permissions == REQUESTED

    @pytest.mark.hipaa_required
    def test_restricted_child_denies_unlisted_requester(self, resolver, family):
        """Test restricted access removes every permission."""
        child = resolver.child_settings(family, "restricted")

        assert resolver.resolve_child(child, REQUESTER, REQUESTED) == frozenset()
        assert resolver.resolve_child(child, "grandma-001", REQUESTED) == REQUESTED

    def test_custom_permissions_intersect(self, resolver, family):
        """Test per-user custom permissions narrow the family set."""
        resolution = resolver.resolve_child_vs_family(
            resolver.child_settings(family, "custom"), REQUESTER, REQUESTED
        )

        assert resolution.source == "child"
        assert resolution.allowed_permissions == frozenset({Permission.VIEW_SYMPTOMS})

    def test_inheriting_child_ignores_its_restrictions(self, resolver, family):
        """Test a child inheriting from the parent keeps family permissions."""
        assert resolver.child_settings(family, "inheriting") is None
        resolution = resolver.resolve_multi_child_permissions(
            family, ["inheriting"], REQUESTER, REQUESTED
        )

        assert resolution.allowed_permissions == REQUESTED
        assert resolution.restricting_children == ()


class TestMultiChild:
    """Most-restrictive-wins resolution across children."""

    @pytest.mark.hipaa_required
    def test_restricted_and_inheriting_gives_empty_set(self, resolver, family):
        """Test one restricted child empties the set for the whole operation."""
        resolution = resolver.resolve_multi_child_permissions(
            family, ["restricted", "inheriting"], REQUESTER, REQUESTED
        )

        assert resolution.allowed_permissions == frozenset()
        assert resolution.restricting_children == ("restricted",)

    def test_permissions_are_order_independent(self, resolver, family):
        """Test every ordering of the children gives the same result."""
        children = ["restricted", "custom", "inheriting", "unknown"]
        results = {
            resolver.resolve_multi_child_permissions(
                family, list(order), "grandma-001", REQUESTED
            )
            for order in permutations(children)
        }

        assert len(results) == 1

    def test_duplicate_children_count_once(self, resolver, family):
        """Test duplicate ids do not change the result."""
        once = resolver.resolve_multi_child_permissions(
            family, ["custom"], REQUESTER, REQUESTED
        )
        twice = resolver.resolve_multi_child_permissions(
            family, ["custom", "custom"], REQUESTER, REQUESTED
        )

        assert once == twice

    def test_retention_takes_minimum_and_or(self, resolver, family):
        """Test retention folds with min periods and OR-ed flags."""
        resolution = resolver.resolve_multi_child_retention(
            family, ["custom", "restricted", "inheriting"]
        )

        assert resolution.retention_period == 24
        assert resolution.automatic_deletion is True
        assert resolution.inactivity_period == family.data_retention.inactivity_period
        assert set(resolution.restricting_children) == {"restricted", "custom"}

    def test_retention_is_order_independent(self, resolver, family):
        """Test retention folding commutes."""
        children = ["custom", "restricted", "inheriting"]
        results = {
            resolver.resolve_multi_child_retention(family, list(order))
            for order in permutations(children)
        }

        assert len(results) == 1

    def test_retention_without_overrides_is_family(self, resolver, family):
        """Test children without overrides leave account retention in place."""
        resolution = resolver.resolve_multi_child_retention(family, ["inheriting"])

        assert resolution.retention_period == 60
        assert resolution.restricting_children == ()

    def test_communications_blocked_by_any_child(self, resolver, family):
        """Test a class restricted for one child is blocked for all."""
        children = ["restricted", "custom", "inheriting"]
        resolution = resolver.resolve_multi_child_communications(family, children)

        assert resolution.blocked == frozenset(
            {CommunicationType.MARKETING_EMAILS, CommunicationType.SMS_NOTIFICATIONS}
        )
        assert resolution.blocked_by[CommunicationType.MARKETING_EMAILS] == ("restricted",)
        assert not resolver.is_communication_allowed(
            family, children, CommunicationType.MARKETING_EMAILS
        )
        # Restriction on an inheriting child is ignored
        assert resolver.is_communication_allowed(
            family, children, CommunicationType.EMAIL_NOTIFICATIONS
        )
        assert resolver.is_communication_allowed(
            family, children, CommunicationType.SECURITY_ALERTS
        )

    def test_privacy_conflict(self, resolver, family):
        """Test conflicts are reported when children disagree."""
        assert resolver.has_privacy_conflict(family, ["restricted", "inheriting"])
        assert resolver.has_privacy_conflict(family, ["inheriting", "restricted"])
        assert not resolver.has_privacy_conflict(family, ["inheriting", "unknown"])
        assert not resolver.has_privacy_conflict(family, ["restricted"])
