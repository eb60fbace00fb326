"""
Celery application: broker and result backend from settings.
Maintenance tasks live in storygate.workers.tasks.maintenance.
"""
from celery import Celery
from celery.schedules import crontab

from storygate.core.config import settings

celery_app = Celery(
    "storygate",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "storygate.workers.tasks.maintenance",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=600,
    result_expires=86400,
    beat_schedule={
        "sweep-ad-sessions": {
            "task": "storygate.workers.tasks.maintenance.sweep_ad_sessions",
            "schedule": crontab(minute="*/10"),
        },
        "compact-purchase-ledger": {
            "task": "storygate.workers.tasks.maintenance.compact_purchase_ledger",
            "schedule": crontab(hour=3, minute=0),
        },
        "reconcile-pending-purchases": {
            "task": "storygate.workers.tasks.maintenance.reconcile_pending_purchases",
            "schedule": crontab(minute="*/30"),
        },
    },
)
