from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from visiona.core.config import Settings
from visiona.models.generation import Generation
from visiona.models.training_job import TrainingJob
from visiona.models.user import User
from visiona.quota.evaluator import QuotaView, evaluate
from visiona.training.errors import StoreFailure


def local_midnight(now: datetime, tz_name: str) -> datetime:
    """Start of the day containing now, in tz_name, returned in UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(ZoneInfo(tz_name))
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc)


class QuotaService:
    """Counts usage from the store on every call; nothing is cached."""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    def get_user(self, user_id: str) -> User | None:
        try:
            return self.db.query(User).filter(User.id == user_id).one_or_none()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreFailure("User read failed", {"user_id": user_id}) from e

    def count_models(self, user_id: str) -> int:
        return self.db.query(func.count(TrainingJob.id)).filter(TrainingJob.user_id == user_id).scalar() or 0

    def count_generations_since(self, user_id: str, since: datetime) -> int:
        return (
            self.db.query(func.count(Generation.id))
            .filter(Generation.user_id == user_id, Generation.created_at >= since)
            .scalar()
            or 0
        )

    def for_user(self, user_id: str, tier: str | None = None, now: datetime | None = None) -> QuotaView:
        now = now or datetime.now(timezone.utc)
        since = local_midnight(now, self.settings.quota_timezone)
        if tier is None:
            user = self.get_user(user_id)
            tier = user.tier if user else None
        try:
            models_owned = self.count_models(user_id)
            generations_today = self.count_generations_since(user_id, since)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreFailure("Quota usage read failed", {"user_id": user_id}) from e
        return evaluate(tier, models_owned, generations_today)
