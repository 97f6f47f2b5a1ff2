"""
Application configuration.
All settings are loaded from environment variables (or .env).
Every field has a development default so the app and tests import without a .env.
"""
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Production deployments must set DATABASE_URL, REDIS_URL and REPLICATE_API_TOKEN.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # Public base URL, used to build the training webhook URL sent to Replicate.
    app_public_url: str = "http://localhost:8000"
    # CORS: comma-separated. Empty = default list in code.
    cors_origins: str = ""
    # Header set by the upstream identity gateway with the authenticated user id.
    user_id_header: str = "X-User-Id"

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str = "sqlite:///./visiona.db"
    db_pool_size: int = 10
    db_max_overflow: int = 20

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"

    # ===========================================
    # REPLICATE (training provider)
    # ===========================================
    replicate_api_token: str = ""
    replicate_api_url: str = "https://api.replicate.com/v1"
    # Outbound call budget. Training itself may run for tens of minutes; this bounds one status fetch.
    replicate_timeout: float = 30.0
    replicate_username: str = "visiona"
    replicate_trainer_model: str = "ostris/flux-dev-lora-trainer"
    replicate_trainer_version: str = "b6af14222e6bd9be257cbc1ea4afda3cd0503e1133083b9d1de0364d8568e6ef"
    # Signing secret ("whsec_...") from Replicate. Empty = signatures are not verified.
    replicate_webhook_secret: str = ""
    # Hardening option: reject webhook deliveries without a signature header.
    webhook_require_signature: bool = False
    webhook_tolerance_seconds: int = 300

    # ===========================================
    # TRAINING LIFECYCLE
    # ===========================================
    training_staleness_minutes: int = 60
    training_sweep_batch_size: int = 50

    # ===========================================
    # QUOTAS
    # ===========================================
    # Timezone whose midnight resets the daily generation counter.
    quota_timezone: str = "UTC"

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("training_staleness_minutes")
    @classmethod
    def validate_staleness(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("training_staleness_minutes must be positive")
        return v

    @field_validator("quota_timezone")
    @classmethod
    def validate_quota_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown quota_timezone: {v}") from e
        return v

    @field_validator("replicate_api_url", "app_public_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def training_webhook_url(self) -> str:
        return f"{self.app_public_url}/webhooks/replicate/completed"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
