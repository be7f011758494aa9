from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from app.api.routes import router as api_router
from app.commissions.seed import seed_default_bonus_tiers
from app.core.config import get_settings
from app.core.context import RequestContextMiddleware
from app.core.database import SessionLocal, get_db
from app.core.events import InternalEvent, event_bus
from app.events import DOMAIN_EVENT_TYPES
from app.logging import configure_logging
from app.middleware.correlation_id import CorrelationIdMiddleware
from app.middleware.rate_limit import MutationRateLimitMiddleware
from app.middleware.request_logging import RequestLoggingMiddleware
from app.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("app.lifecycle")
_subscriptions_registered = False


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system.started", extra={"status": event.payload.get("service")})


def _on_domain_event(event: InternalEvent) -> None:
    payload = event.payload.get("payload", {}) if isinstance(event.payload, dict) else {}
    logger.info(
        event.name,
        extra={
            "actor_id": event.payload.get("actor_id"),
            "job_id": payload.get("job_id"),
            "request_id": payload.get("request_id"),
        },
    )


def _seed_bonus_tiers() -> None:
    override = app.dependency_overrides.get(get_db)
    if override is None:
        session = SessionLocal()
        try:
            seed_default_bonus_tiers(session)
        finally:
            session.close()
        return

    generator = override()
    session = next(generator)
    try:
        seed_default_bonus_tiers(session)
    finally:
        generator.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        for event_name in DOMAIN_EVENT_TYPES:
            event_bus.subscribe(event_name, _on_domain_event)
        _subscriptions_registered = True
    if get_settings().seed_bonus_tiers_on_startup:
        _seed_bonus_tiers()
    event_bus.publish("system.started", {"service": "api"})
    yield


settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
app.add_middleware(MutationRateLimitMiddleware)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

if settings.otel_enabled:
    setup_otel("api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
