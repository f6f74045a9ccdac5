"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from app.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "playswipe",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "app.tasks.cleanup",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution
    task_track_started=True,
    task_time_limit=600,
    task_soft_time_limit=540,

    # Result backend
    result_expires=86400,  # Results expire after 1 day

    # Worker settings
    worker_prefetch_multiplier=1,

    # Scheduled tasks
    beat_schedule={
        # Drop expired login sessions every hour
        "purge-expired-sessions": {
            "task": "app.tasks.cleanup.purge_expired_sessions",
            "schedule": crontab(minute=0),
        },
        # Drop expired verification tokens daily at 3 AM
        "purge-expired-verification-tokens": {
            "task": "app.tasks.cleanup.purge_expired_verification_tokens",
            "schedule": crontab(minute=0, hour=3),
        },
    },
)
