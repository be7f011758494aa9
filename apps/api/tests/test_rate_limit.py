from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import issue_token
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.main import app
from app.middleware.rate_limit import MutationRateLimiter, mutation_group, reset_rate_limiter
from app.pipeline.models import User


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
def configure_rate_limiter_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "false")
    monkeypatch.setenv("RATE_LIMIT_MUTATIONS_PER_MINUTE", "3")
    monkeypatch.setenv("RATE_LIMIT_COMMISSION_MUTATIONS_PER_MINUTE", "2")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    reset_rate_limiter()
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def office_headers(db_session: Session) -> dict[str, str]:
    user = User(name="Office", role="office")
    db_session.add(user)
    db_session.commit()
    return {"Authorization": f"Bearer {issue_token(user.id)}"}


def test_mutating_job_endpoints_are_rate_limited(client: TestClient, office_headers: dict[str, str]) -> None:
    responses = [
        client.post("/api/jobs", json={"customer_name": f"Rate Limit Job {index}"}, headers=office_headers)
        for index in range(5)
    ]

    assert [response.status_code for response in responses[:3]] == [201, 201, 201]
    limited = [response for response in responses if response.status_code == 429]
    assert limited

    first_limited = limited[0]
    body = first_limited.json()
    assert body["code"] == "rate_limited"
    assert body["message"] == "Too many requests"
    assert body["details"]["route_group"] == "jobs"
    assert body["correlation_id"] == first_limited.headers["x-correlation-id"]
    assert first_limited.headers.get("Retry-After") == str(body["details"]["retry_after"])


def test_get_endpoints_are_not_rate_limited(client: TestClient, office_headers: dict[str, str]) -> None:
    create = client.post("/api/jobs", json={"customer_name": "Readable Job"}, headers=office_headers)
    assert create.status_code == 201

    responses = [client.get("/api/jobs", headers=office_headers) for _ in range(10)]
    assert all(response.status_code == 200 for response in responses)


def test_buckets_are_per_user(client: TestClient, db_session: Session, office_headers: dict[str, str]) -> None:
    for index in range(3):
        client.post("/api/jobs", json={"customer_name": f"Burst {index}"}, headers=office_headers)
    assert client.post("/api/jobs", json={"customer_name": "Over"}, headers=office_headers).status_code == 429

    other = User(name="Other Office", role="office")
    db_session.add(other)
    db_session.commit()
    other_headers = {"Authorization": f"Bearer {issue_token(other.id)}"}
    assert client.post("/api/jobs", json={"customer_name": "Fresh"}, headers=other_headers).status_code == 201


def test_commission_mutations_have_their_own_tighter_bucket(
    client: TestClient,
    office_headers: dict[str, str],
) -> None:
    statuses = [
        client.post("/api/commissions/requests", json={"job_id": 9999}, headers=office_headers).status_code
        for _ in range(3)
    ]

    assert statuses == [404, 404, 429]
    assert client.post("/api/jobs", json={"customer_name": "Still Allowed"}, headers=office_headers).status_code == 201


def test_unauthenticated_mutations_get_401_not_429(client: TestClient) -> None:
    statuses = {client.post("/api/jobs", json={"customer_name": "Anon"}).status_code for _ in range(6)}

    assert statuses == {401}


@pytest.mark.parametrize(
    ("path", "group"),
    [
        ("/api/jobs", "jobs"),
        ("/api/jobs/12", "jobs"),
        ("/api/jobs/12/lien-rights/sent", "lien_rights"),
        ("/api/lien-rights/expire-overdue", "lien_rights"),
        ("/api/commissions/requests/4/review", "commissions"),
        ("/api/history/8", "history"),
        ("/api/team/members/3", "team"),
        ("/me", None),
        ("/metrics", None),
    ],
)
def test_mutation_group(path: str, group: str | None) -> None:
    assert mutation_group(path) == group


class _FakeMonotonic:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_limiter_refills_and_reports_retry_after() -> None:
    clock = _FakeMonotonic()
    limiter = MutationRateLimiter(clock=clock)

    assert limiter.take(1, "jobs", capacity=2, window_seconds=2) == (True, 0)
    assert limiter.take(1, "jobs", capacity=2, window_seconds=2) == (True, 0)
    assert limiter.take(1, "jobs", capacity=2, window_seconds=2) == (False, 1)
    assert limiter.take(2, "jobs", capacity=2, window_seconds=2) == (True, 0)

    clock.now += 1
    assert limiter.take(1, "jobs", capacity=2, window_seconds=2) == (True, 0)


def test_limiter_evicts_idle_buckets() -> None:
    clock = _FakeMonotonic()
    limiter = MutationRateLimiter(clock=clock)
    for user_id in range(1, 51):
        limiter.take(user_id, "jobs", capacity=5)
    assert len(limiter) == 50

    clock.now += 61
    limiter.take(99, "commissions", capacity=5)

    assert len(limiter) == 1
