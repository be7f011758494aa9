from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.context import get_correlation_id
from app.core.errors import (
    AlreadySubmittedError,
    GovernanceError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.platform.security.errors import AuthorizationError, ForbiddenError


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def governance_error_response(
    request: Request,
    exc: GovernanceError | AuthorizationError,
    *,
    code: str,
) -> JSONResponse:
    if isinstance(exc, ForbiddenError):
        return error_response(
            request,
            status_code=status.HTTP_403_FORBIDDEN,
            code="forbidden",
            message=str(exc),
            details={"capability": exc.capability, "resource": exc.resource},
        )
    if isinstance(exc, AuthorizationError):
        return error_response(request, status_code=status.HTTP_403_FORBIDDEN, code="forbidden", message=str(exc))
    if isinstance(exc, NotFoundError):
        return error_response(
            request,
            status_code=status.HTTP_404_NOT_FOUND,
            code="not_found",
            message=str(exc),
            details={"resource": exc.resource, "id": str(exc.identifier)},
        )
    if isinstance(exc, AlreadySubmittedError):
        return error_response(
            request,
            status_code=status.HTTP_409_CONFLICT,
            code="commission_already_submitted",
            message=str(exc),
            details={"job_id": exc.job_id},
        )
    if isinstance(exc, ValidationError):
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code=f"{code}_invalid",
            message=str(exc),
        )
    if isinstance(exc, InvalidStateError):
        return error_response(request, status_code=status.HTTP_409_CONFLICT, code="invalid_state", message=str(exc))
    return error_response(request, status_code=status.HTTP_400_BAD_REQUEST, code=code, message=str(exc))
