"""Celery Tasks for Privacy Lifecycle Maintenance.

This module contains the periodic sweeps of the governance engine: scheduled
deletions, legal hold re-evaluation, automatic retention and grant expiry.
Each sweep is idempotent and may overlap with live authorization checks.
"""

from typing import Dict, Optional

from celery import shared_task

from family_privacy.container import PrivacyGovernance
from family_privacy.models.deletion import DeletionStatus
from family_privacy.utils.logging import get_logger

logger = get_logger(__name__)


def run_deletion_sweep(governance: PrivacyGovernance) -> Dict[str, int]:
    """Re-check legal holds, then purge due requests."""
    changed = governance.lifecycle.reevaluate_blocked_requests()
    processed = governance.lifecycle.process_scheduled_deletions()
    result = {
        "reevaluated": len(changed),
        "processed": len(processed),
        "completed": sum(1 for r in processed if r.status == DeletionStatus.COMPLETED),
        "failed": sum(1 for r in processed if r.status == DeletionStatus.FAILED),
        "blocked": sum(
            1 for r in processed if r.status == DeletionStatus.BLOCKED_LEGAL_HOLD
        ),
    }
    logger.info("deletion_sweep_finished", **result)
    return result


def run_retention_sweep(governance: PrivacyGovernance) -> Dict[str, int]:
    """Request deletion for accounts past retention or inactivity."""
    created = governance.lifecycle.process_automatic_retention()
    result = {"requested": len(created)}
    logger.info("retention_sweep_finished", **result)
    return result


def run_expiry_sweep(governance: PrivacyGovernance) -> Dict[str, int]:
    """Mark expired grants inactive."""
    expired = governance.grant_expiry.mark_expired_grants()
    result = {"expired": len(expired)}
    logger.info("expiry_sweep_finished", **result)
    return result


def _governance(governance: Optional[PrivacyGovernance]) -> PrivacyGovernance:
    return governance or PrivacyGovernance.from_settings()


@shared_task(name="family_privacy.tasks.process_scheduled_deletions")  # type: ignore[misc]
def process_scheduled_deletions(governance: Optional[PrivacyGovernance] = None) -> Dict[str, int]:
    """Process due deletion requests."""
    return run_deletion_sweep(_governance(governance))


@shared_task(name="family_privacy.tasks.process_automatic_retention")  # type: ignore[misc]
def process_automatic_retention(governance: Optional[PrivacyGovernance] = None) -> Dict[str, int]:
    """Detect accounts due for automatic deletion."""
    return run_retention_sweep(_governance(governance))


@shared_task(name="family_privacy.tasks.mark_expired_grants")  # type: ignore[misc]
def mark_expired_grants(governance: Optional[PrivacyGovernance] = None) -> Dict[str, int]:
    """Persist and audit grant expiry."""
    return run_expiry_sweep(_governance(governance))
