"""Celery Configuration for Privacy Lifecycle Sweeps.

This module configures Celery beat to run the periodic governance sweeps.
"""

from celery import Celery
from celery.schedules import crontab

from family_privacy.config import get_settings

settings = get_settings()

celery_app = Celery(
    "family_privacy",
    broker=settings.celery_broker_url,
    backend=settings.celery_broker_url,
    include=["family_privacy.tasks.privacy_jobs"],
)

celery_app.conf.update(
    # Task serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    # Beat schedule for periodic sweeps
    beat_schedule={
        # Process due deletions every hour
        "process-scheduled-deletions": {
            "task": "family_privacy.tasks.process_scheduled_deletions",
            "schedule": crontab(minute=0),
        },
        # Detect retention expiry every day at 2 AM
        "process-automatic-retention": {
            "task": "family_privacy.tasks.process_automatic_retention",
            "schedule": crontab(hour=2, minute=0),
        },
        # Mark expired grants inactive
        "mark-expired-grants": {
            "task": "family_privacy.tasks.mark_expired_grants",
            "schedule": crontab(minute=f"*/{settings.expiry_sweep_minutes}"),
        },
    },
)
