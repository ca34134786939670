"""Celery application configuration.

This module sets up the Celery app with:
- Redis as broker and result backend
- Task routing to specialized queues
- Serialization and timezone settings
- Beat schedule for the outbox drain and the signature sweep
- structlog wired into worker processes
"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from app.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "merchant_backoffice",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

# Configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task routing: different queues for different workloads
    task_routes={
        "worker.tasks.triggers.*": {"queue": "triggers"},
        "worker.tasks.outbox.*": {"queue": "notifications"},
        "worker.tasks.signatures.*": {"queue": "default"},
        "worker.tasks.*": {"queue": "default"},
    },

    # Default queue
    task_default_queue="default",

    # Result expiration (24 hours)
    result_expires=86400,

    # Task execution limits
    task_soft_time_limit=300,   # 5 min soft limit (raises SoftTimeLimitExceeded)
    task_time_limit=600,        # 10 min hard limit (kills the task)
    task_acks_late=True,        # Acknowledge after execution
    worker_prefetch_multiplier=1,  # One task at a time per worker process

    # Retry
    task_reject_on_worker_lost=True,
    task_acks_on_failure_or_timeout=True,

    # Beat schedule for periodic tasks
    beat_schedule={
        "drain-delivery-outbox": {
            "task": "worker.tasks.outbox.drain_outbox",
            "schedule": crontab(minute="*/1"),  # Every minute
            "options": {"queue": "notifications"},
        },
        "sweep-expiring-signatures": {
            "task": "worker.tasks.signatures.sweep_expiring_signatures",
            "schedule": crontab(minute=0, hour=f"*/{settings.SIGNATURE_SWEEP_INTERVAL_HOURS}"),
            "options": {"queue": "default"},
        },
    },

    # Auto-discover task modules
    include=[
        "worker.tasks.triggers",
        "worker.tasks.outbox",
        "worker.tasks.signatures",
    ],
)


@celery_setup_logging.connect
def _configure_worker_logging(**kwargs):
    """Use the application's structlog setup instead of Celery's logger."""
    from core.logging_config import setup_logging

    setup_logging()
