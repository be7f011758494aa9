from __future__ import annotations

import json
import logging
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.context import reset_actor_id, reset_correlation_id, set_actor_id, set_correlation_id
from app.core.auth import issue_token
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.logging import CorrelationIdFilter, JsonLogFormatter
from app.main import app
from app.middleware.rate_limit import reset_rate_limiter
from app.pipeline.models import Job, User


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
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _user(session: Session, role: str) -> User:
    user = User(name=role, role=role)
    session.add(user)
    session.commit()
    return user


def test_logs_include_correlation_id_for_http(
    client: TestClient,
    db_session: Session,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)
    owner = _user(db_session, "owner")

    response = client.get(
        "/api/jobs/9999",
        headers={"Authorization": f"Bearer {issue_token(owner.id)}", "X-Correlation-Id": "abc-123"},
    )
    assert response.status_code == 404

    records = [record for record in caplog.records if record.name == "app.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/jobs/{id}"
        and getattr(record, "status_code", None) == 404
        and getattr(record, "actor_id", None) == str(owner.id)
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_denied_access_is_logged_with_actor_and_capability(
    client: TestClient,
    db_session: Session,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)
    rep = _user(db_session, "sales_rep")
    job = Job(customer_name="Hidden", assigned_to=rep.id + 1)
    db_session.add(job)
    db_session.commit()

    response = client.get(
        f"/api/jobs/{job.id}",
        headers={"Authorization": f"Bearer {issue_token(rep.id)}", "X-Correlation-Id": "deny-1"},
    )
    assert response.status_code == 404

    denials = [record for record in caplog.records if record.name == "app.security" and record.getMessage() == "access.denied"]
    assert any(
        getattr(record, "actor_id", None) == rep.id
        and getattr(record, "capability", None) == "view"
        and getattr(record, "resource_id", None) == job.id
        and getattr(record, "correlation_id", None) == "deny-1"
        for record in denials
    )


def test_job_mutation_logs_carry_job_and_actor(
    client: TestClient,
    db_session: Session,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)
    office = _user(db_session, "office")

    response = client.post(
        "/api/jobs",
        json={"customer_name": "Logged Job"},
        headers={"Authorization": f"Bearer {issue_token(office.id)}", "X-Correlation-Id": "job-log-1"},
    )
    assert response.status_code == 201

    job_records = [record for record in caplog.records if record.name == "app.pipeline"]
    assert any(
        record.getMessage() == "pipeline.job.created"
        and getattr(record, "job_id", None) == response.json()["id"]
        and getattr(record, "actor_id", None) == office.id
        and getattr(record, "correlation_id", None) == "job-log-1"
        for record in job_records
    )


def test_json_formatter_emits_context_and_known_fields() -> None:
    correlation_token = set_correlation_id("fmt-corr-1")
    actor_token = set_actor_id(77)
    try:
        record = logging.getLogger("app.test").makeRecord(
            "app.test",
            logging.INFO,
            __file__,
            1,
            "lien.integrity_warning",
            None,
            None,
            extra={"job_id": 5, "code": "lien.missing_completion_date", "unlisted": "dropped"},
        )
        CorrelationIdFilter().filter(record)
        payload = json.loads(JsonLogFormatter().format(record))
    finally:
        reset_actor_id(actor_token)
        reset_correlation_id(correlation_token)

    assert payload["msg"] == "lien.integrity_warning"
    assert payload["correlation_id"] == "fmt-corr-1"
    assert payload["fields"]["job_id"] == 5
    assert payload["fields"]["actor_id"] == 77
    assert payload["fields"]["code"] == "lien.missing_completion_date"
    assert "unlisted" not in payload["fields"]
