"""
Replicate training webhook (webhook_events_filter=["completed"]).
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from visiona.api.deps import to_http_error
from visiona.core.config import settings
from visiona.db.session import get_db
from visiona.training.errors import (
    InvalidPayload,
    InvalidSignature,
    StoreFailure,
    TrainingError,
    TrainingJobNotFound,
)
from visiona.training.webhook import WebhookReconciler
from visiona.utils.metrics import training_webhooks_total

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

_OUTCOMES: list[tuple[type[TrainingError], str]] = [
    (InvalidPayload, "invalid_payload"),
    (InvalidSignature, "invalid_signature"),
    (TrainingJobNotFound, "not_found"),
    (StoreFailure, "store_failure"),
]


@router.post("/replicate/completed")
async def replicate_training_completed(request: Request, db: Session = Depends(get_db)) -> dict:
    """Apply a training lifecycle event. 404 for unknown ids so Replicate does not retry."""
    body = await request.body()
    try:
        result = WebhookReconciler(db, settings).handle(body, request.headers)
    except TrainingError as e:
        outcome = next((name for cls, name in _OUTCOMES if isinstance(e, cls)), "error")
        training_webhooks_total.labels(outcome=outcome).inc()
        if isinstance(e, (InvalidPayload, InvalidSignature, TrainingJobNotFound)):
            logger.warning("training_webhook_rejected", extra={"error": str(e), "job_id": e.detail.get("job_id")})
        raise to_http_error(e) from e

    training_webhooks_total.labels(outcome="applied").inc()
    return {
        "success": True,
        "id": result.job_id,
        "status": result.status,
        "status_changed": result.status_changed,
    }
