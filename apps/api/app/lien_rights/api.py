from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_current_actor
from app.api.errors import governance_error_response
from app.core.clock import Clock, get_clock
from app.core.database import get_db
from app.core.errors import GovernanceError
from app.lien_rights.schemas import LienAlertSummary, LienJobRead, LienStateRead, LienSweepResult
from app.lien_rights.service import LienRightsService
from app.platform.security.context import Actor
from app.platform.security.errors import AuthorizationError

router = APIRouter(prefix="/api", tags=["pipeline.lien_rights"])


def get_lien_rights_service(clock: Clock = Depends(get_clock)) -> LienRightsService:
    return LienRightsService(clock=clock)


@router.get("/jobs/{job_id}/lien-rights", response_model=LienStateRead)
def get_job_lien_state(
    request: Request,
    job_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: LienRightsService = Depends(get_lien_rights_service),
) -> LienStateRead | JSONResponse:
    try:
        return service.job_lien_state(db, actor, job_id)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="lien_rights_read_failed")


@router.post("/jobs/{job_id}/lien-rights/sent", response_model=LienStateRead)
def mark_lien_sent(
    request: Request,
    job_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: LienRightsService = Depends(get_lien_rights_service),
) -> LienStateRead | JSONResponse:
    try:
        return service.mark_lien_sent(db, actor, job_id)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="lien_rights_send_failed")


@router.post("/jobs/{job_id}/lien-rights/waive", response_model=LienStateRead)
def waive_lien_rights(
    request: Request,
    job_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: LienRightsService = Depends(get_lien_rights_service),
) -> LienStateRead | JSONResponse:
    try:
        return service.waive_lien_rights(db, actor, job_id)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="lien_rights_waive_failed")


@router.get("/lien-rights", response_model=list[LienJobRead])
def list_lien_rights_jobs(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: LienRightsService = Depends(get_lien_rights_service),
) -> list[LienJobRead]:
    return service.lien_rights_jobs(db, actor)


@router.get("/lien-rights/critical", response_model=list[LienJobRead])
def list_critical_lien_jobs(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: LienRightsService = Depends(get_lien_rights_service),
) -> list[LienJobRead]:
    return service.critical_lien_jobs(db, actor)


@router.get("/lien-rights/summary", response_model=LienAlertSummary)
def get_lien_alert_summary(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: LienRightsService = Depends(get_lien_rights_service),
) -> LienAlertSummary:
    return service.alert_summary(db, actor)


@router.post("/lien-rights/expire-overdue", response_model=LienSweepResult)
def expire_overdue_lien_rights(
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: LienRightsService = Depends(get_lien_rights_service),
) -> LienSweepResult | JSONResponse:
    try:
        return service.expire_overdue(db, actor)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="lien_rights_sweep_failed")
