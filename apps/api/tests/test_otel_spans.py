from __future__ import annotations

import os
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("OTEL_ENABLED", "true")

from app.core.auth import issue_token
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.main import app
from app.middleware.rate_limit import reset_rate_limiter
from app.otel import setup_inmemory_otel
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
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel("api")
    exporter.clear()
    return exporter


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def owner_headers(db_session: Session) -> dict[str, str]:
    owner = User(name="Owner", role="owner")
    db_session.add(owner)
    db_session.commit()
    return {"Authorization": f"Bearer {issue_token(owner.id)}"}


def test_request_span_contains_correlation_id(
    client: TestClient,
    span_exporter: InMemorySpanExporter,
    owner_headers: dict[str, str],
) -> None:
    response = client.post(
        "/api/jobs",
        json={"customer_name": "Span Job"},
        headers={**owner_headers, "X-Correlation-Id": "otel-corr-1"},
    )
    assert response.status_code == 201

    spans = span_exporter.get_finished_spans()
    assert spans
    assert any(span.attributes.get("correlation_id") == "otel-corr-1" for span in spans)


def test_job_mutation_spans_carry_job_id(
    client: TestClient,
    span_exporter: InMemorySpanExporter,
    owner_headers: dict[str, str],
) -> None:
    created = client.post("/api/jobs", json={"customer_name": "Traced Job"}, headers=owner_headers)
    assert created.status_code == 201
    job_id = created.json()["id"]

    updated = client.patch(f"/api/jobs/{job_id}", json={"priority": "urgent", "address": "3 Span St"}, headers=owner_headers)
    assert updated.status_code == 200

    spans = span_exporter.get_finished_spans()
    create_spans = [span for span in spans if span.name == "pipeline.job.create"]
    update_spans = [span for span in spans if span.name == "pipeline.job.update"]
    assert any(span.attributes.get("job_id") == job_id for span in create_spans)
    assert any(
        span.attributes.get("job_id") == job_id and span.attributes.get("field_count") == 2
        for span in update_spans
    )


def test_commission_submit_span(
    client: TestClient,
    db_session: Session,
    span_exporter: InMemorySpanExporter,
) -> None:
    rep = User(name="Rep", role="sales_rep")
    db_session.add(rep)
    db_session.commit()
    job = Job(customer_name="Span Commission", assigned_to=rep.id)
    db_session.add(job)
    db_session.commit()

    response = client.post(
        "/api/commissions/requests",
        json={"job_id": job.id},
        headers={"Authorization": f"Bearer {issue_token(rep.id)}"},
    )
    assert response.status_code == 201

    spans = [span for span in span_exporter.get_finished_spans() if span.name == "commission.submit"]
    assert any(span.attributes.get("job_id") == job.id for span in spans)
