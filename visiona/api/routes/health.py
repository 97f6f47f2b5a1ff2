from fastapi import APIRouter, Depends, Request, Response
import redis
from sqlalchemy import text
from sqlalchemy.orm import Session

from visiona.core.config import settings
from visiona.db.session import get_db


router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Liveness probe - always returns 200 if app is running."""
    return {"status": "ok"}


@router.get("/ready")
def readiness(request: Request, response: Response, db: Session = Depends(get_db)) -> dict:
    """
    Readiness probe - 503 if the store or Redis (breaker state) is down.
    A missing Replicate token is reported but does not fail readiness: webhooks still work.
    """
    checks: dict[str, str] = {}
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {type(e).__name__}"
    try:
        redis.Redis.from_url(settings.redis_url, decode_responses=True).ping()
        checks["redis"] = "ok"
    except redis.RedisError as e:
        checks["redis"] = f"error: {type(e).__name__}"

    provider = getattr(request.app.state, "training_provider", None)
    checks["replicate"] = "configured" if provider is not None and provider.is_available() else "not_configured"

    if any(value.startswith("error") for value in checks.values()):
        response.status_code = 503
        return {"status": "not_ready", "checks": checks}
    return {"status": "ready", "checks": checks}
