from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, String

from visiona.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    email = Column(String, nullable=True)
    # NB: written by the billing side; this service only reads it for quotas.
    tier = Column(String, nullable=False, default="free")  # free | premium
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
