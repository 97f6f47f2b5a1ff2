"""
Quota rules per tier. Pure logic, no I/O.
"""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class Tier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"

    @classmethod
    def parse(cls, value: str | None) -> "Tier":
        """Unknown or missing tier gets free limits."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.FREE


class TierLimits(BaseModel):
    models: int
    generations_per_day: int

    model_config = {"frozen": True}


TIER_LIMITS: dict[Tier, TierLimits] = {
    Tier.FREE: TierLimits(models=5, generations_per_day=20),
    Tier.PREMIUM: TierLimits(models=100, generations_per_day=1000),
}


class QuotaDimension(BaseModel):
    limit: int
    used: int
    remaining: int

    model_config = {"frozen": True}


class QuotaView(BaseModel):
    tier: Tier
    models: QuotaDimension
    generations: QuotaDimension

    model_config = {"frozen": True}


def _dimension(limit: int, used: int) -> QuotaDimension:
    used = max(0, used)
    # Saturates at zero, e.g. after a downgrade
    return QuotaDimension(limit=limit, used=used, remaining=max(0, limit - used))


def evaluate(tier: Tier | str | None, models_owned: int, generations_today: int) -> QuotaView:
    tier = tier if isinstance(tier, Tier) else Tier.parse(tier)
    limits = TIER_LIMITS[tier]
    return QuotaView(
        tier=tier,
        models=_dimension(limits.models, models_owned),
        generations=_dimension(limits.generations_per_day, generations_today),
    )
