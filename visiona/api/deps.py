"""
Shared FastAPI dependencies and the error -> HTTP mapping for the training core.
"""
from fastapi import HTTPException, Request, status

from visiona.core.config import settings
from visiona.training.errors import (
    InvalidPayload,
    InvalidSignature,
    ProviderUnavailable,
    QuotaExceeded,
    StoreFailure,
    TrainingError,
    TrainingJobNotFound,
)
from visiona.training.provider import ReplicateTrainingClient


_STATUS_BY_ERROR: list[tuple[type[TrainingError], int]] = [
    (InvalidPayload, status.HTTP_400_BAD_REQUEST),
    (InvalidSignature, status.HTTP_401_UNAUTHORIZED),
    (QuotaExceeded, status.HTTP_403_FORBIDDEN),
    (TrainingJobNotFound, status.HTTP_404_NOT_FOUND),
    (ProviderUnavailable, status.HTTP_502_BAD_GATEWAY),
    (StoreFailure, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def to_http_error(exc: TrainingError) -> HTTPException:
    for error_cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return HTTPException(status_code=code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def get_training_provider(request: Request) -> ReplicateTrainingClient:
    """Client built once at startup (see visiona.main lifespan)."""
    return request.app.state.training_provider


def get_current_user_id(request: Request) -> str:
    """Identity is verified upstream; the gateway forwards the user id in a header."""
    user_id = (request.headers.get(settings.user_id_header) or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user_id
