"""
Pull channel: fetch the provider's view of a training and apply the shared transition.
Invoked opportunistically when a read finds a stale job, on demand, or by the optional sweep.
"""
import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from visiona.models.training_job import TrainingJob
from visiona.training.errors import ProviderUnavailable, StoreFailure, TrainingJobNotFound
from visiona.training.provider import ReplicateTrainingClient
from visiona.training.staleness import is_stale
from visiona.training.status import is_terminal_status
from visiona.training.transition import TransitionResult, apply_provider_update
from visiona.utils.metrics import training_polls_total

logger = logging.getLogger(__name__)


class PollingReconciler:
    def __init__(self, db: Session, provider: ReplicateTrainingClient) -> None:
        self.db = db
        self.provider = provider

    def _get(self, job_id: str) -> TrainingJob:
        try:
            job = self.db.query(TrainingJob).filter(TrainingJob.id == job_id).one_or_none()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreFailure("Training job read failed", {"job_id": job_id}) from e
        if job is None:
            raise TrainingJobNotFound(job_id)
        return job

    def reconcile(self, job_id: str, now: datetime | None = None) -> TransitionResult:
        """
        Pull the provider status for job_id and apply it.

        Raises TrainingJobNotFound, ProviderUnavailable (record untouched) or StoreFailure.
        """
        try:
            job = self._get(job_id)
            if is_terminal_status(job.status) and (job.trigger_word or "").strip():
                # Nothing the provider could still change
                training_polls_total.labels(outcome="skipped").inc()
                return TransitionResult(
                    job_id=job.id,
                    previous_status=job.status,
                    status=job.status,
                    status_changed=False,
                )

            try:
                payload = self.provider.get_training(job_id)
            except ProviderUnavailable as e:
                logger.warning(
                    "training_poll_provider_unavailable",
                    extra={"job_id": job_id, "error": str(e)},
                )
                raise
            # The row is keyed by the provider id; never let the response redirect the write
            payload = payload.model_copy(update={"id": job_id})
            result = apply_provider_update(self.db, payload, now=now, channel="poll")
        except ProviderUnavailable:
            training_polls_total.labels(outcome="provider_unavailable").inc()
            raise
        except TrainingJobNotFound:
            training_polls_total.labels(outcome="not_found").inc()
            raise
        except StoreFailure:
            training_polls_total.labels(outcome="store_failure").inc()
            raise

        training_polls_total.labels(outcome="applied" if result.written else "skipped").inc()
        return result

    def refresh_if_stale(self, job: TrainingJob, now: datetime | None = None) -> TrainingJob:
        """
        Read-path hook: reconcile a stale job, then return the current record.
        Transient provider failures are logged; the caller sees the last known status.
        """
        if not is_stale(job, now=now):
            return job
        logger.info("training_stale_detected", extra={"job_id": job.id, "status": job.status})
        try:
            self.reconcile(job.id, now=now)
        except ProviderUnavailable:
            return job
        return self._get(job.id)
