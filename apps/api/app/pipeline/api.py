from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_current_actor
from app.api.errors import governance_error_response
from app.core.clock import Clock, get_clock
from app.core.database import get_db
from app.core.errors import GovernanceError
from app.pipeline.schemas import (
    CapabilitiesRead,
    JobCreate,
    JobRead,
    JobScopeOfWorkRead,
    JobStatusRead,
    JobUpdate,
    TeamMemberUpdate,
    UserRead,
)
from app.pipeline.service import JobService, capabilities_read, team_service
from app.pipeline.status_catalog import STATUS_CATALOG, DealType, JobStatus
from app.platform.security.context import Actor
from app.platform.security.errors import AuthorizationError

router = APIRouter(prefix="/api/jobs", tags=["pipeline.jobs"])
team_router = APIRouter(prefix="/api/team", tags=["pipeline.team"])


def get_job_service(clock: Clock = Depends(get_clock)) -> JobService:
    return JobService(clock=clock)


@router.post("", response_model=JobRead, status_code=status.HTTP_201_CREATED)
def create_job(
    request: Request,
    dto: JobCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: JobService = Depends(get_job_service),
) -> JobRead | JSONResponse:
    try:
        return service.create_job(db, actor, dto)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="pipeline_job_create_failed")


@router.get("", response_model=None)
def list_jobs(
    request: Request,
    status_filter: JobStatus | None = Query(default=None, alias="status"),
    deal_type: DealType | None = Query(default=None),
    assigned_to: int | None = Query(default=None),
    search: str | None = Query(default=None),
    cursor: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: JobService = Depends(get_job_service),
) -> list[JobRead | JobScopeOfWorkRead] | JSONResponse:
    try:
        return service.list_jobs(
            db,
            actor,
            filters={"status": status_filter, "deal_type": deal_type, "assigned_to": assigned_to, "search": search},
            cursor=cursor,
            limit=limit,
        )
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="pipeline_job_list_failed")


@router.get("/statuses", response_model=list[JobStatusRead])
def list_job_statuses(actor: Actor = Depends(get_current_actor)) -> list[JobStatusRead]:
    """Pipeline columns in display order."""

    return [JobStatusRead.model_validate(item) for item in STATUS_CATALOG]


@router.get("/{job_id}", response_model=None)
def get_job(
    request: Request,
    job_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: JobService = Depends(get_job_service),
) -> JobRead | JobScopeOfWorkRead | JSONResponse:
    try:
        return service.get_job(db, actor, job_id)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="pipeline_job_get_failed")


@router.patch("/{job_id}", response_model=JobRead)
def update_job(
    request: Request,
    job_id: int,
    dto: JobUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: JobService = Depends(get_job_service),
) -> JobRead | JSONResponse:
    try:
        return service.update_job(db, actor, job_id, dto)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="pipeline_job_update_failed")


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_job(
    request: Request,
    job_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: JobService = Depends(get_job_service),
) -> Response:
    try:
        service.delete_job(db, actor, job_id)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="pipeline_job_delete_failed")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{job_id}/capabilities", response_model=CapabilitiesRead)
def get_job_capabilities(
    request: Request,
    job_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    service: JobService = Depends(get_job_service),
) -> CapabilitiesRead | JSONResponse:
    try:
        return capabilities_read(service.job_capabilities(db, actor, job_id))
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="pipeline_job_capabilities_failed")


@team_router.patch("/members/{user_id}", response_model=UserRead)
def update_team_member(
    request: Request,
    user_id: int,
    dto: TeamMemberUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> UserRead | JSONResponse:
    try:
        return team_service.update_team_member(db, actor, user_id, dto)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="team_member_update_failed")
