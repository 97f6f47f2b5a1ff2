"""
Celery application: broker and result backend from settings.
The only periodic task is the stale-training sweep; job correctness never depends on it running.
"""
from celery import Celery
from celery.schedules import crontab

from visiona.core.config import settings

celery_app = Celery(
    "visiona",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "visiona.workers.tasks.sync_trainings",
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
        "sync-stale-trainings": {
            "task": "visiona.workers.tasks.sync_trainings.sync_stale_trainings",
            "schedule": crontab(minute="*/15"),
        },
    },
)
