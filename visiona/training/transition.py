"""
The one transition function for training jobs.

Webhook deliveries and polls both end up here, so the two channels cannot
interpret the same provider status differently. Each call re-reads the row
under a row lock; terminal states are never overwritten, which keeps
concurrent webhook + poll arrivals safe under last-write-wins.
"""
import logging
from datetime import datetime, timezone

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from visiona.models.training_job import TrainingJob
from visiona.schemas.training import ProviderPayload
from visiona.training.errors import StoreFailure, TrainingJobNotFound
from visiona.training.status import TrainingStatus, is_terminal_status, map_provider_status
from visiona.utils.metrics import training_transitions_total

logger = logging.getLogger(__name__)


class TransitionResult(BaseModel):
    """Outcome of one reconciliation pass."""

    job_id: str
    previous_status: str
    status: str
    status_changed: bool
    backfilled: bool = False
    written: bool = False

    model_config = {"frozen": True}


def load_job_for_update(db: Session, job_id: str) -> TrainingJob:
    """Fresh read of the row with a row lock (no-op on SQLite)."""
    try:
        job = (
            db.query(TrainingJob)
            .filter(TrainingJob.id == job_id)
            .populate_existing()
            .with_for_update()
            .one_or_none()
        )
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreFailure("Training job read failed", {"job_id": job_id, "error": type(e).__name__}) from e
    if job is None:
        raise TrainingJobNotFound(job_id)
    return job


def apply_provider_update(
    db: Session,
    payload: ProviderPayload,
    now: datetime | None = None,
    channel: str = "webhook",
) -> TransitionResult:
    """
    Apply a provider-reported state to the stored job.

    Raises TrainingJobNotFound if the id is unknown, StoreFailure if the store fails
    (the transaction is rolled back, nothing is partially written).
    """
    now = now or datetime.now(timezone.utc)
    job = load_job_for_update(db, payload.id)

    previous = job.status
    target = map_provider_status(payload.status)
    written = False
    backfilled = False

    if not is_terminal_status(previous):
        job.status = target.value
        if target is TrainingStatus.SUCCEEDED:
            job.version_id = payload.version_id
            job.output_data = dict(payload.output or {})
            job.trained_at = now
        elif target is TrainingStatus.FAILED:
            job.error_message = payload.error
        written = True

    # Backfill: repairs data missing at creation, so allowed even on a terminal job
    if target is TrainingStatus.SUCCEEDED and not (job.trigger_word or "").strip() and payload.trigger_word:
        job.trigger_word = payload.trigger_word
        backfilled = True
        written = True

    if not written:
        db.rollback()  # release the row lock
        logger.info(
            "training_transition_skipped",
            extra={"job_id": payload.id, "status": previous, "provider_status": payload.status},
        )
        return TransitionResult(
            job_id=payload.id,
            previous_status=previous,
            status=previous,
            status_changed=False,
        )

    job.updated_at = now
    try:
        db.add(job)
        db.commit()
        db.refresh(job)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("training_transition_store_error", extra={"job_id": payload.id})
        raise StoreFailure("Training job write failed", {"job_id": payload.id, "error": type(e).__name__}) from e

    status_changed = job.status != previous
    if status_changed:
        training_transitions_total.labels(channel=channel, status=job.status).inc()
    logger.info(
        "training_transition_applied",
        extra={
            "job_id": job.id,
            "previous_status": previous,
            "status": job.status,
            "provider_status": payload.status,
            "backfilled": backfilled,
        },
    )
    return TransitionResult(
        job_id=job.id,
        previous_status=previous,
        status=job.status,
        status_changed=status_changed,
        backfilled=backfilled,
        written=True,
    )
