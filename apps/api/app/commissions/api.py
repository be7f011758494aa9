from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_current_actor
from app.api.errors import governance_error_response
from app.commissions.schemas import BonusSubmission, CommissionRequestRead, ReviewDecision, WeeklyProgressRead
from app.commissions.service import CommissionService
from app.core.clock import Clock, get_clock
from app.core.database import get_db
from app.core.errors import GovernanceError
from app.platform.security.context import Actor
from app.platform.security.errors import AuthorizationError

router = APIRouter(prefix="/api/commissions", tags=["commissions"])


def get_commission_service(clock: Clock = Depends(get_clock)) -> CommissionService:
    return CommissionService(clock=clock)


@router.get("/progress", response_model=WeeklyProgressRead)
def get_weekly_progress(
    request: Request,
    user_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: CommissionService = Depends(get_commission_service),
) -> WeeklyProgressRead | JSONResponse:
    try:
        return service.weekly_progress(db, actor, target_user_id=user_id)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="commission_progress_failed")


@router.post("/requests", response_model=CommissionRequestRead, status_code=status.HTTP_201_CREATED)
def submit_for_bonus(
    request: Request,
    dto: BonusSubmission,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: CommissionService = Depends(get_commission_service),
) -> CommissionRequestRead | JSONResponse:
    try:
        return service.submit_for_bonus(db, actor, dto.job_id, payment_id=dto.payment_id)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="commission_submit_failed")


@router.post("/requests/{request_id}/review", response_model=CommissionRequestRead)
def review_commission_request(
    request: Request,
    request_id: int,
    dto: ReviewDecision,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: CommissionService = Depends(get_commission_service),
) -> CommissionRequestRead | JSONResponse:
    try:
        return service.review_request(db, actor, request_id, approved=dto.approved, reason=dto.reason)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="commission_review_failed")


@router.get("/requests/pending", response_model=list[CommissionRequestRead])
def list_pending_requests(
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: CommissionService = Depends(get_commission_service),
) -> list[CommissionRequestRead] | JSONResponse:
    try:
        return service.list_pending_requests(db, actor)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="commission_pending_list_failed")


@router.get("/requests/mine", response_model=list[CommissionRequestRead])
def list_my_requests(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: CommissionService = Depends(get_commission_service),
) -> list[CommissionRequestRead]:
    return service.list_my_requests(db, actor)
