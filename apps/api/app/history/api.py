from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_current_actor
from app.api.errors import governance_error_response
from app.core.database import get_db
from app.core.errors import GovernanceError
from app.history.recorder import DEFAULT_HISTORY_LIMIT, audit_trail_recorder
from app.history.schemas import EditHistoryRead
from app.platform.security.context import Actor
from app.platform.security.errors import AuthorizationError

router = APIRouter(prefix="/api", tags=["pipeline.history"])


@router.get("/jobs/{job_id}/history", response_model=list[EditHistoryRead])
def get_job_history(
    request: Request,
    job_id: int,
    limit: int = Query(default=DEFAULT_HISTORY_LIMIT, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[EditHistoryRead] | JSONResponse:
    try:
        return audit_trail_recorder.get_history(db, actor, job_id, limit=limit)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="history_read_failed")


@router.delete("/history/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_history_entry(
    request: Request,
    entry_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Response:
    try:
        audit_trail_recorder.delete_entry(db, actor, entry_id)
    except (GovernanceError, AuthorizationError) as exc:
        return governance_error_response(request, exc, code="history_delete_failed")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
