from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class BonusSubmission(BaseModel):
    job_id: int
    payment_id: str | None = Field(default=None, max_length=128)


class ReviewDecision(BaseModel):
    approved: bool
    reason: str | None = None


class CommissionRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: int
    check_amount: Decimal
    payment_id: str | None
    status: str
    denial_reason: str | None
    submitted_by: int
    reviewed_by: int | None
    reviewed_at: datetime | None
    created_at: datetime


class TierRead(BaseModel):
    required_deals: int
    bonus_amount: Decimal


class NextTierRead(TierRead):
    deals_remaining: int


class TierProgressRead(TierRead):
    achieved: bool


class WeeklyProgressRead(BaseModel):
    user_id: int
    week_start: datetime
    week_end: datetime
    approved_deals_this_week: int
    current_tier: TierRead | None
    next_tier: NextTierRead | None
    all_tiers: list[TierProgressRead]
