from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class Tier:
    required_deals: int
    bonus_amount: Decimal


@dataclass(frozen=True, slots=True)
class TierStatus:
    tier: Tier
    achieved: bool


@dataclass(frozen=True, slots=True)
class TierEvaluation:
    approved_deals: int
    current_tier: Tier | None
    next_tier: Tier | None
    deals_remaining: int | None
    all_tiers: tuple[TierStatus, ...]


def evaluate_tiers(approved_deals: int, tiers: Iterable[Tier]) -> TierEvaluation:
    """Current tier is the highest reached, next tier the lowest not yet reached."""

    ordered = sorted(tiers, key=lambda tier: tier.required_deals)
    current_tier: Tier | None = None
    next_tier: Tier | None = None
    for tier in ordered:
        if tier.required_deals <= approved_deals:
            current_tier = tier
        elif next_tier is None:
            next_tier = tier

    return TierEvaluation(
        approved_deals=approved_deals,
        current_tier=current_tier,
        next_tier=next_tier,
        deals_remaining=next_tier.required_deals - approved_deals if next_tier is not None else None,
        all_tiers=tuple(TierStatus(tier=tier, achieved=tier.required_deals <= approved_deals) for tier in ordered),
    )
