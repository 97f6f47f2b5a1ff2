import logging
import re
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from visiona.core.config import Settings
from visiona.models.training_job import TrainingJob
from visiona.quota.service import QuotaService
from visiona.schemas.training import TrainingCreateIn
from visiona.training.errors import QuotaExceeded, StoreFailure, TrainingJobNotFound
from visiona.training.polling import PollingReconciler
from visiona.training.provider import ReplicateTrainingClient
from visiona.training.status import TrainingStatus
from visiona.utils.metrics import trainings_submitted_total

logger = logging.getLogger(__name__)


def destination_model_name(name: str) -> str:
    """Replicate model names: lowercase, dashes for whitespace, no other punctuation."""
    slug = re.sub(r"\s+", "-", name.strip().lower())
    slug = re.sub(r"[^a-z0-9._-]", "", slug)
    return slug or "model"


class TrainingJobService:
    def __init__(self, db: Session, settings: Settings, provider: ReplicateTrainingClient):
        self.db = db
        self.settings = settings
        self.provider = provider

    def get(self, job_id: str) -> TrainingJob | None:
        try:
            return self.db.query(TrainingJob).filter(TrainingJob.id == job_id).one_or_none()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreFailure("Training job read failed", {"job_id": job_id}) from e

    def get_for_user(self, job_id: str, user_id: str) -> TrainingJob:
        """Another user's job is reported as missing."""
        job = self.get(job_id)
        if job is None or job.user_id != user_id:
            raise TrainingJobNotFound(job_id)
        return job

    def read(self, job_id: str, user_id: str, now: datetime | None = None) -> TrainingJob:
        """Read path: a stale job is reconciled with the provider before it is returned."""
        job = self.get_for_user(job_id, user_id)
        return PollingReconciler(self.db, self.provider).refresh_if_stale(job, now=now)

    def create_job(
        self,
        job_id: str,
        user_id: str,
        trigger_word: str | None,
        name: str | None = None,
        parameters: dict | None = None,
    ) -> TrainingJob:
        now = datetime.now(timezone.utc)
        job = TrainingJob(
            id=job_id,
            user_id=user_id,
            name=name,
            trigger_word=trigger_word,
            status=TrainingStatus.PROCESSING.value,
            parameters=parameters or {},
            created_at=now,
            updated_at=now,
        )
        try:
            self.db.add(job)
            self.db.commit()
            self.db.refresh(job)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreFailure("Training job insert failed", {"job_id": job_id}) from e
        return job

    def submit(self, user_id: str, request: TrainingCreateIn) -> TrainingJob:
        """
        Start a LoRA training on Replicate and record it as processing.

        Raises QuotaExceeded when the user's model quota is used up,
        ProviderUnavailable if Replicate rejects or cannot be reached.
        """
        quota = QuotaService(self.db, self.settings).for_user(user_id)
        if quota.models.remaining <= 0:
            raise QuotaExceeded(
                "Model quota exhausted",
                {"user_id": user_id, "limit": quota.models.limit, "tier": quota.tier.value},
            )

        owner = self.settings.replicate_username
        model_name = destination_model_name(request.name)
        self.provider.ensure_destination_model(
            owner,
            model_name,
            f'Model trained with "{request.name}" images and trigger word "{request.trigger_word}"',
        )
        parameters = {
            "training_steps": request.training_steps,
            "learning_rate": request.learning_rate,
            "lora_rank": request.lora_rank,
            "resolution": request.resolution,
            "batch_size": request.batch_size,
        }
        training = self.provider.create_training(
            destination=f"{owner}/{model_name}",
            training_input={
                "input_images": request.images_url,
                "trigger_word": request.trigger_word,
                **parameters,
            },
            webhook_url=self.settings.training_webhook_url,
        )
        job = self.create_job(
            job_id=training.id,
            user_id=user_id,
            trigger_word=request.trigger_word,
            name=request.name,
            parameters=parameters,
        )
        trainings_submitted_total.inc()
        logger.info("training_submitted", extra={"job_id": job.id, "user_id": user_id})
        return job
