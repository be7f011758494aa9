from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.context import get_correlation_id
from app.core.auth import AuthUser, get_current_user
from app.core.database import get_db
from app.pipeline.models import User
from app.platform.security.context import Actor


def get_current_actor(
    request: Request,
    auth_user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Actor:
    """Load the CRM user named by the token subject and wrap it as the acting user."""

    user_id = auth_user.user_id
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="not authenticated")

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unknown user")

    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    return Actor.from_user(user, correlation_id=correlation_id)
