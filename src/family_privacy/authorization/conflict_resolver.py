"""Child Privacy Conflict Resolver.

Merges family-wide settings with per-child overrides and, for operations that
touch several children at once, folds the children's settings together with a
most-restrictive-wins rule. Every multi-child fold is built from set
intersection, ``min`` and logical OR so the outcome never depends on the order
the children are given in.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from family_privacy.models.privacy import (
    ChildPrivacySettings,
    CommunicationType,
    DataRetentionSettings,
    Permission,
    PrivacySettings,
)
from family_privacy.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ChildResolution:
    """Permissions left for one child and where the decision came from."""

    allowed_permissions: FrozenSet[Permission]
    source: str  # "child" or "family"


@dataclass(frozen=True)
class MultiChildResolution:
    """Permissions left for a multi-child operation."""

    allowed_permissions: FrozenSet[Permission]
    restricting_children: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RetentionResolution:
    """Effective retention for a multi-child operation."""

    automatic_deletion: bool
    retention_period: int
    delete_after_inactivity: bool
    inactivity_period: int
    restricting_children: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CommunicationResolution:
    """Communication classes blocked for a multi-child operation."""

    blocked: FrozenSet[CommunicationType]
    blocked_by: Dict[CommunicationType, Tuple[str, ...]] = field(default_factory=dict)

    def is_allowed(self, communication_type: CommunicationType) -> bool:
        """Check whether a communication class may be sent."""
        return communication_type not in self.blocked


def _unique_sorted(child_ids: Iterable[str]) -> List[str]:
    return sorted(set(child_ids))


class ChildPrivacyConflictResolver:
    """Resolves per-child privacy overrides against family settings."""

    def child_settings(
        self, settings: PrivacySettings, child_id: str
    ) -> Optional[ChildPrivacySettings]:
        """Get the overrides that apply to a child.

        Returns None when the child has no settings entry or inherits from the
        parent, in which case the account-wide settings are authoritative.
        """
        child = settings.child_specific.get(child_id)
        if child is None or child.inherit_from_parent:
            return None
        return child

    def resolve_child(
        self,
        child_settings: Optional[ChildPrivacySettings],
        requester_id: str,
        requested: Iterable[Permission],
    ) -> FrozenSet[Permission]:
        """Resolve a requested permission set against one child's overrides.

        Args:
            child_settings: The child's settings, None if the child has none
            requester_id: Identity asking for access
            requested: Permissions the requester holds at family level

        Returns:
            The subset of ``requested`` the child's settings allow
        """
        requested_set = frozenset(requested)

        if child_settings is None or child_settings.inherit_from_parent:
            return requested_set

        if child_settings.restricted_access and requester_id not in child_settings.allowed_users:
            return frozenset()

        custom = (child_settings.custom_permissions or {}).get(requester_id)
        if custom is not None:
            return requested_set & frozenset(custom)

        return requested_set

    def resolve_child_vs_family(
        self,
        child_settings: Optional[ChildPrivacySettings],
        requester_id: str,
        requested: Iterable[Permission],
    ) -> ChildResolution:
        """Resolve one child and report whether child or family settings decided."""
        if child_settings is None or child_settings.inherit_from_parent:
            return ChildResolution(frozenset(requested), source="family")
        return ChildResolution(
            self.resolve_child(child_settings, requester_id, requested), source="child"
        )

    def resolve_multi_child_permissions(
        self,
        settings: PrivacySettings,
        child_ids: Iterable[str],
        requester_id: str,
        requested: Iterable[Permission],
    ) -> MultiChildResolution:
        """Intersect the per-child resolutions of every child in the operation."""
        requested_set = frozenset(requested)
        allowed = requested_set
        restricting: List[str] = []

        for child_id in _unique_sorted(child_ids):
            child_allowed = self.resolve_child(
                self.child_settings(settings, child_id), requester_id, requested_set
            )
            if child_allowed != requested_set:
                restricting.append(child_id)
            allowed &= child_allowed

        if restricting:
            logger.debug(
                "multi_child_permissions_restricted",
                owner_id=settings.owner_id,
                restricting_children=restricting,
            )
        return MultiChildResolution(allowed, tuple(restricting))

    def resolve_multi_child_retention(
        self, settings: PrivacySettings, child_ids: Iterable[str]
    ) -> RetentionResolution:
        """Fold account retention with every non-inheriting child override.

        Periods take the minimum, deletion flags are OR-ed.
        """
        family: DataRetentionSettings = settings.data_retention
        automatic_deletion = family.automatic_deletion
        retention_period = family.retention_period
        delete_after_inactivity = family.delete_after_inactivity
        inactivity_period = family.inactivity_period

        overrides = []
        for child_id in _unique_sorted(child_ids):
            child = self.child_settings(settings, child_id)
            if child is not None and child.data_retention_override is not None:
                overrides.append(child.data_retention_override)

        for override in overrides:
            if override.retention_period is not None:
                retention_period = min(retention_period, override.retention_period)
            if override.inactivity_period is not None:
                inactivity_period = min(inactivity_period, override.inactivity_period)
            automatic_deletion = automatic_deletion or bool(override.automatic_deletion)
            delete_after_inactivity = delete_after_inactivity or bool(
                override.delete_after_inactivity
            )

        restricting = [
            child_id
            for child_id in _unique_sorted(child_ids)
            if self._override_binds(
                settings,
                child_id,
                retention_period,
                inactivity_period,
                automatic_deletion and not family.automatic_deletion,
                delete_after_inactivity and not family.delete_after_inactivity,
            )
        ]

        return RetentionResolution(
            automatic_deletion=automatic_deletion,
            retention_period=retention_period,
            delete_after_inactivity=delete_after_inactivity,
            inactivity_period=inactivity_period,
            restricting_children=tuple(restricting),
        )

    def _override_binds(
        self,
        settings: PrivacySettings,
        child_id: str,
        retention_period: int,
        inactivity_period: int,
        automatic_from_child: bool,
        inactivity_deletion_from_child: bool,
    ) -> bool:
        child = self.child_settings(settings, child_id)
        override = child.data_retention_override if child else None
        if override is None:
            return False
        family = settings.data_retention
        return (
            (
                override.retention_period is not None
                and override.retention_period == retention_period
                and retention_period < family.retention_period
            )
            or (
                override.inactivity_period is not None
                and override.inactivity_period == inactivity_period
                and inactivity_period < family.inactivity_period
            )
            or (automatic_from_child and bool(override.automatic_deletion))
            or (inactivity_deletion_from_child and bool(override.delete_after_inactivity))
        )

    def resolve_multi_child_communications(
        self, settings: PrivacySettings, child_ids: Iterable[str]
    ) -> CommunicationResolution:
        """Block every communication class restricted by any non-inheriting child."""
        blocked_by: Dict[CommunicationType, List[str]] = {}
        for child_id in _unique_sorted(child_ids):
            child = self.child_settings(settings, child_id)
            if child is None:
                continue
            for communication_type in child.communication_restrictions:
                blocked_by.setdefault(communication_type, []).append(child_id)

        return CommunicationResolution(
            blocked=frozenset(blocked_by),
            blocked_by={k: tuple(v) for k, v in blocked_by.items()},
        )

    def is_communication_allowed(
        self,
        settings: PrivacySettings,
        child_ids: Iterable[str],
        communication_type: CommunicationType,
    ) -> bool:
        """Check whether a communication class may go out for these children."""
        return self.resolve_multi_child_communications(settings, child_ids).is_allowed(
            communication_type
        )

    def has_privacy_conflict(
        self, settings: PrivacySettings, child_ids: Iterable[str]
    ) -> bool:
        """Check whether the children's effective settings disagree.

        Inheriting children (and children without overrides) count as
        unrestricted with no communication restrictions and no retention
        override.
        """
        ids = _unique_sorted(child_ids)
        if len(ids) <= 1:
            return False

        profiles = set()
        for child_id in ids:
            child = self.child_settings(settings, child_id)
            if child is None:
                profiles.add((False, False, False))
            else:
                profiles.add(
                    (
                        child.restricted_access,
                        bool(child.communication_restrictions),
                        child.data_retention_override is not None,
                    )
                )

        return any(len({profile[i] for profile in profiles}) > 1 for i in range(3))
