"""Shared fixtures: in-memory SQLite store with the real schema."""
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from visiona.db.base import Base
from visiona.models.generation import Generation  # noqa: F401  (registers table)
from visiona.models.training_job import TrainingJob
from visiona.models.user import User  # noqa: F401


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def make_job(db):
    def _make(job_id="T1", user_id="u1", status="processing", trigger_word="", updated_at=None, **kwargs):
        ts = updated_at or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        job = TrainingJob(
            id=job_id,
            user_id=user_id,
            status=status,
            trigger_word=trigger_word,
            parameters={},
            created_at=ts,
            updated_at=ts,
            **kwargs,
        )
        db.add(job)
        db.commit()
        return job

    return _make


@pytest.fixture
def snapshot(db):
    """Column values of the stored row, read fresh."""
    def _snapshot(job_id: str) -> dict:
        db.expire_all()
        job = db.query(TrainingJob).filter(TrainingJob.id == job_id).one()
        return {c.name: getattr(job, c.name) for c in TrainingJob.__table__.columns}

    return _snapshot
