"""
Boundary DTOs: provider payloads (webhook body / poll response) and API responses.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ProviderPayload(BaseModel):
    """
    Replicate training payload, validated once at the boundary.
    Same shape for webhook deliveries and GET /trainings/{id}; extra fields are ignored.
    """

    id: str = Field(..., min_length=1)
    status: str = ""
    output: dict[str, Any] | None = None
    error: str | None = None

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def strip_id(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("output", mode="before")
    @classmethod
    def coerce_output(cls, v: Any) -> dict[str, Any] | None:
        if v is None or isinstance(v, dict):
            return v
        # Non-object outputs (e.g. a bare weights URL) are kept, wrapped
        return {"value": v}

    @field_validator("error", mode="before")
    @classmethod
    def coerce_error(cls, v: Any) -> str | None:
        if v is None or v == "":
            return None
        if isinstance(v, str):
            return v
        return json.dumps(v, ensure_ascii=False, default=str)

    @property
    def version_id(self) -> str:
        """Trained artifact id: explicit version, then the output's own id, then the training id."""
        output = self.output or {}
        for key in ("version", "id"):
            value = output.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return self.id

    @property
    def trigger_word(self) -> str | None:
        value = (self.output or {}).get("trigger_word")
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None


class TrainingJobOut(BaseModel):
    id: str
    user_id: str
    name: str | None
    trigger_word: str | None
    status: str
    version_id: str | None
    error_message: str | None
    created_at: datetime
    updated_at: datetime
    trained_at: datetime | None

    model_config = {"from_attributes": True}


class TrainingSyncOut(BaseModel):
    id: str
    status: str
    previous_status: str | None
    status_changed: bool
    backfilled: bool


class TrainingCreateIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    trigger_word: str = Field(..., min_length=1, max_length=50)
    # URL of the zip archive with the training photos (object storage, signed)
    images_url: str = Field(..., min_length=1)
    training_steps: int = Field(1000, ge=1, le=10_000)
    learning_rate: float = Field(4e-4, gt=0)
    lora_rank: int = Field(16, ge=1, le=128)
    resolution: int = Field(512, ge=256, le=2048)
    batch_size: int = Field(1, ge=1, le=16)

    @field_validator("trigger_word")
    @classmethod
    def trigger_word_single_token(cls, v: str) -> str:
        v = v.strip()
        if not v or any(ch.isspace() for ch in v):
            raise ValueError("trigger_word must be a single token")
        return v
