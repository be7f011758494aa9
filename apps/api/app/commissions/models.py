from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CommissionRequest(Base):
    __tablename__ = "commission_request"
    __table_args__ = (
        # At most one pending or approved request per job; denied requests may be resubmitted.
        Index(
            "uq_commission_request_active_job",
            "job_id",
            unique=True,
            postgresql_where=text("status <> 'denied'"),
            sqlite_where=text("status <> 'denied'"),
        ),
        Index("ix_commission_request_submitter_status", "submitted_by", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(Integer, ForeignKey("crm_job.id", ondelete="CASCADE"), nullable=False)
    check_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")
    denial_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_by: Mapped[int] = mapped_column(Integer, nullable=False)
    reviewed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class BonusTier(Base):
    __tablename__ = "commission_bonus_tier"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    required_deals: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    bonus_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
