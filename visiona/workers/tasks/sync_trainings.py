"""
Celery beat task: poll Replicate for trainings stuck in 'processing' past the staleness threshold.
Same reconciler as the read path; a failure on one job never aborts the batch.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from visiona.core.celery_app import celery_app
from visiona.core.config import settings
from visiona.db.session import SessionLocal
from visiona.models.training_job import TrainingJob
from visiona.training.errors import ProviderUnavailable, StoreFailure, TrainingJobNotFound
from visiona.training.polling import PollingReconciler
from visiona.training.provider import ReplicateTrainingClient
from visiona.training.staleness import default_threshold
from visiona.training.status import TrainingStatus

logger = logging.getLogger(__name__)


def find_stale_job_ids(db: Session, now: datetime, limit: int) -> list[str]:
    cutoff = now - default_threshold()
    rows = (
        db.query(TrainingJob.id)
        .filter(
            TrainingJob.status == TrainingStatus.PROCESSING.value,
            TrainingJob.updated_at < cutoff,
        )
        .order_by(TrainingJob.updated_at.asc())
        .limit(limit)
        .all()
    )
    return [row[0] for row in rows]


def sync_stale_jobs(db: Session, provider: ReplicateTrainingClient, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    reconciler = PollingReconciler(db, provider)
    counts = {
        "checked": 0,
        "changed": 0,
        "unchanged": 0,
        "provider_unavailable": 0,
        "missing": 0,
        "store_failure": 0,
    }

    for job_id in find_stale_job_ids(db, now, settings.training_sweep_batch_size):
        counts["checked"] += 1
        try:
            result = reconciler.reconcile(job_id, now=now)
        except ProviderUnavailable:
            counts["provider_unavailable"] += 1
            continue
        except TrainingJobNotFound:
            # Deleted between the select and the poll
            counts["missing"] += 1
            continue
        except StoreFailure:
            # already rolled back by the transition function
            logger.warning("sync_stale_trainings_job_store_error", extra={"job_id": job_id})
            counts["store_failure"] += 1
            continue
        counts["changed" if result.status_changed else "unchanged"] += 1

    return counts


@celery_app.task(
    name="visiona.workers.tasks.sync_trainings.sync_stale_trainings",
    time_limit=300,
    soft_time_limit=280,
)
def sync_stale_trainings() -> dict:
    db = SessionLocal()
    try:
        counts = sync_stale_jobs(db, ReplicateTrainingClient.from_settings(settings))
        if counts["checked"]:
            logger.info("sync_stale_trainings_done", extra={"count": counts["checked"], "status": counts})
        return {"ok": True, **counts}
    except SQLAlchemyError:
        # the stale-job select itself failed
        logger.exception("sync_stale_trainings_store_error")
        db.rollback()
        return {"ok": False}
    finally:
        db.close()
