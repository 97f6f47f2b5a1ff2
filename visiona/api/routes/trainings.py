from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from visiona.api.deps import get_current_user_id, get_training_provider, to_http_error
from visiona.core.config import settings
from visiona.db.session import get_db
from visiona.schemas.training import TrainingCreateIn, TrainingJobOut, TrainingSyncOut
from visiona.services.trainings.service import TrainingJobService
from visiona.training.errors import TrainingError
from visiona.training.polling import PollingReconciler
from visiona.training.provider import ReplicateTrainingClient


router = APIRouter(prefix="/trainings", tags=["trainings"])


@router.post("", response_model=TrainingJobOut, status_code=status.HTTP_201_CREATED)
def create_training(
    body: TrainingCreateIn,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    provider: ReplicateTrainingClient = Depends(get_training_provider),
) -> TrainingJobOut:
    service = TrainingJobService(db, settings, provider)
    try:
        job = service.submit(user_id, body)
    except TrainingError as e:
        raise to_http_error(e) from e
    return TrainingJobOut.model_validate(job)


@router.get("/{job_id}", response_model=TrainingJobOut)
def get_training(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    provider: ReplicateTrainingClient = Depends(get_training_provider),
) -> TrainingJobOut:
    """Current record; a job stuck in processing is checked against Replicate first."""
    service = TrainingJobService(db, settings, provider)
    try:
        job = service.read(job_id, user_id)
    except TrainingError as e:
        raise to_http_error(e) from e
    return TrainingJobOut.model_validate(job)


@router.post("/{job_id}/sync", response_model=TrainingSyncOut)
def sync_training(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    provider: ReplicateTrainingClient = Depends(get_training_provider),
) -> TrainingSyncOut:
    """On-demand poll regardless of staleness."""
    try:
        TrainingJobService(db, settings, provider).get_for_user(job_id, user_id)
        result = PollingReconciler(db, provider).reconcile(job_id)
    except TrainingError as e:
        raise to_http_error(e) from e
    return TrainingSyncOut(
        id=result.job_id,
        status=result.status,
        previous_status=result.previous_status,
        status_changed=result.status_changed,
        backfilled=result.backfilled,
    )
