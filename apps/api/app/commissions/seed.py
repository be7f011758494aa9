from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.commissions.models import BonusTier
from app.core.config import get_settings


logger = logging.getLogger("app.commissions")


def seed_default_bonus_tiers(session: Session) -> int:
    """Insert the configured bonus tiers when the tier table is empty."""

    existing = session.scalar(select(func.count(BonusTier.id))) or 0
    if existing:
        return 0

    tiers = get_settings().default_bonus_tiers
    for item in tiers:
        session.add(BonusTier(required_deals=item.required_deals, bonus_amount=Decimal(item.bonus_amount)))
    session.commit()
    logger.info("commission.tiers_seeded", extra={"field_count": len(tiers)})
    return len(tiers)
