from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from visiona.api.deps import get_current_user_id, to_http_error
from visiona.core.config import settings
from visiona.db.session import get_db
from visiona.quota.evaluator import QuotaView
from visiona.quota.service import QuotaService
from visiona.training.errors import TrainingError


router = APIRouter(prefix="/user", tags=["user"])


class ProfileOut(BaseModel):
    id: str
    email: str | None
    quota: QuotaView


@router.get("/profile", response_model=ProfileOut)
def get_profile(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)) -> ProfileOut:
    """Usage and remaining quota; recomputed on every call."""
    service = QuotaService(db, settings)
    try:
        user = service.get_user(user_id)
        quota = service.for_user(user_id, tier=user.tier if user else None)
    except TrainingError as e:
        raise to_http_error(e) from e
    return ProfileOut(id=user_id, email=user.email if user else None, quota=quota)
