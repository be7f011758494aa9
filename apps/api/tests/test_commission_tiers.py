from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.commissions.models import CommissionRequest
from app.commissions.seed import seed_default_bonus_tiers
from app.commissions.service import CommissionService
from app.commissions.tiers import Tier, evaluate_tiers
from app.commissions.week import week_window
from app.core.clock import FixedClock
from app.core.config import get_settings
from app.core.database import Base
from app.core.errors import NotFoundError
from app.pipeline.models import Job, User
from app.platform.security.context import Actor
from app.platform.security.errors import ForbiddenError


DEFAULT_TIERS = [
    Tier(required_deals=1, bonus_amount=Decimal("500.00")),
    Tier(required_deals=3, bonus_amount=Decimal("1500.00")),
    Tier(required_deals=5, bonus_amount=Decimal("3000.00")),
]

# Wednesday 2026-03-11 10:00 in America/Chicago (CDT, UTC-5).
WEDNESDAY = datetime(2026, 3, 11, 15, 0, tzinfo=timezone.utc)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("COMMISSION_TIMEZONE", "America/Chicago")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _actor(session: Session, role: str) -> Actor:
    user = User(name=role, role=role)
    session.add(user)
    session.commit()
    return Actor.from_user(user)


def _approved_request(session: Session, submitted_by: int, created_at: datetime, status: str = "approved") -> None:
    job = Job(customer_name="Commission Job", assigned_to=submitted_by)
    session.add(job)
    session.flush()
    session.add(
        CommissionRequest(
            job_id=job.id,
            check_amount=Decimal("12000.00"),
            status=status,
            submitted_by=submitted_by,
            created_at=created_at,
        )
    )
    session.commit()


def test_three_deals_reach_the_middle_tier() -> None:
    evaluation = evaluate_tiers(3, DEFAULT_TIERS)

    assert evaluation.current_tier is not None
    assert evaluation.current_tier.required_deals == 3
    assert evaluation.next_tier is not None
    assert evaluation.next_tier.required_deals == 5
    assert evaluation.deals_remaining == 2
    assert [item.achieved for item in evaluation.all_tiers] == [True, True, False]


def test_tier_edges() -> None:
    none_yet = evaluate_tiers(0, reversed(DEFAULT_TIERS))
    assert none_yet.current_tier is None
    assert none_yet.next_tier == DEFAULT_TIERS[0]
    assert none_yet.deals_remaining == 1

    maxed = evaluate_tiers(9, DEFAULT_TIERS)
    assert maxed.current_tier == DEFAULT_TIERS[-1]
    assert maxed.next_tier is None
    assert maxed.deals_remaining is None

    assert evaluate_tiers(2, []).current_tier is None


def test_week_window_is_monday_to_monday_in_local_time() -> None:
    window = week_window(WEDNESDAY, "America/Chicago")

    assert window.start == datetime(2026, 3, 9, 5, 0, tzinfo=timezone.utc)
    assert window.end_exclusive == datetime(2026, 3, 16, 5, 0, tzinfo=timezone.utc)
    assert window.end == window.end_exclusive - timedelta(microseconds=1)
    assert window.contains(window.start)
    assert not window.contains(window.end_exclusive)


def test_week_window_spans_a_daylight_saving_change() -> None:
    # US clocks spring forward on Sunday 2026-03-08.
    window = week_window(datetime(2026, 3, 8, 12, 0, tzinfo=timezone.utc), "America/Chicago")

    assert window.start == datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)
    assert window.end_exclusive == datetime(2026, 3, 9, 5, 0, tzinfo=timezone.utc)


def test_sunday_night_local_still_belongs_to_the_current_week() -> None:
    # Sunday 23:30 CDT is already Monday in UTC.
    sunday_night = datetime(2026, 3, 16, 4, 30, tzinfo=timezone.utc)

    window = week_window(sunday_night, "America/Chicago")

    assert window.start == datetime(2026, 3, 9, 5, 0, tzinfo=timezone.utc)


def test_weekly_progress_counts_only_this_weeks_approved_requests(db_session: Session) -> None:
    seed_default_bonus_tiers(db_session)
    rep = _actor(db_session, "sales_rep")
    other = _actor(db_session, "sales_rep")
    week_start = datetime(2026, 3, 9, 5, 0, tzinfo=timezone.utc)

    _approved_request(db_session, rep.user_id, week_start)
    _approved_request(db_session, rep.user_id, week_start + timedelta(days=1))
    _approved_request(db_session, rep.user_id, WEDNESDAY - timedelta(minutes=1))
    _approved_request(db_session, rep.user_id, week_start - timedelta(seconds=1))
    _approved_request(db_session, rep.user_id, WEDNESDAY, status="pending")
    _approved_request(db_session, rep.user_id, WEDNESDAY, status="denied")
    _approved_request(db_session, other.user_id, WEDNESDAY)

    service = CommissionService(clock=FixedClock(WEDNESDAY))
    progress = service.weekly_progress(db_session, rep)

    assert progress.approved_deals_this_week == 3
    assert progress.current_tier is not None and progress.current_tier.required_deals == 3
    assert progress.next_tier is not None and progress.next_tier.required_deals == 5
    assert progress.next_tier.deals_remaining == 2
    assert [tier.achieved for tier in progress.all_tiers] == [True, True, False]
    assert progress.week_start.isoformat() == "2026-03-09T00:00:00-05:00"
    assert progress.week_end.isoformat() == "2026-03-15T23:59:59.999999-05:00"


def test_weekly_progress_for_another_user(db_session: Session) -> None:
    seed_default_bonus_tiers(db_session)
    owner = _actor(db_session, "owner")
    rep = _actor(db_session, "sales_rep")
    other_rep = _actor(db_session, "sales_rep")
    _approved_request(db_session, rep.user_id, WEDNESDAY)
    service = CommissionService(clock=FixedClock(WEDNESDAY))

    assert service.weekly_progress(db_session, owner, rep.user_id).approved_deals_this_week == 1
    with pytest.raises(ForbiddenError):
        service.weekly_progress(db_session, other_rep, rep.user_id)
    with pytest.raises(NotFoundError):
        service.weekly_progress(db_session, owner, 9999)


def test_seed_is_idempotent(db_session: Session) -> None:
    assert seed_default_bonus_tiers(db_session) == 3
    assert seed_default_bonus_tiers(db_session) == 0
