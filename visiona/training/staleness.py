from datetime import datetime, timedelta, timezone

from visiona.core.config import settings
from visiona.training.status import TrainingStatus


def as_utc(value: datetime) -> datetime:
    """Stores without tz support (SQLite) hand back naive datetimes; they are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def default_threshold() -> timedelta:
    return timedelta(minutes=settings.training_staleness_minutes)


def is_stale(job, now: datetime | None = None, threshold: timedelta | None = None) -> bool:
    """A processing job not heard from for longer than threshold may have missed its webhook."""
    if job.status != TrainingStatus.PROCESSING.value:
        return False
    if job.updated_at is None:
        return True
    now = now or datetime.now(timezone.utc)
    threshold = threshold if threshold is not None else default_threshold()
    return as_utc(now) - as_utc(job.updated_at) > threshold
