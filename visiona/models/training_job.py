from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from visiona.db.base import Base, JSONType


class TrainingJob(Base):
    __tablename__ = "training_jobs"

    # Provider training id; the row is created only after the provider accepted the job.
    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String(100), nullable=True)
    trigger_word = Column(String(50), nullable=True)  # may be backfilled once from a success payload
    status = Column(String, nullable=False, default="processing", index=True)
    # Written once, on the success transition
    version_id = Column(String, nullable=True)
    output_data = Column(JSONType, nullable=True)
    trained_at = Column(DateTime(timezone=True), nullable=True)
    # Written only on the failure transition
    error_message = Column(Text, nullable=True)
    parameters = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    # Set explicitly by the transition function; no onupdate so a skipped write keeps the old value
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
