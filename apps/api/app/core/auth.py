from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from starlette.requests import Request

from app.context import set_actor_id
from app.core.config import get_settings


@dataclass
class AuthUser:
    sub: str | None
    roles: list[str] = field(default_factory=list)

    @property
    def user_id(self) -> int | None:
        if self.sub is None or not self.sub.isdigit():
            return None
        return int(self.sub)


def issue_token(user_id: int, *, expires_in: timedelta = timedelta(hours=8)) -> str:
    settings = get_settings()
    payload = {"sub": str(user_id), "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_bearer_token(request: Request) -> dict[str, Any] | None:
    """Return the verified JWT claims of the request, or None when absent or invalid."""

    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""
    if not token:
        return None

    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def token_user_id(request: Request) -> int | None:
    claims = decode_bearer_token(request)
    if claims is None:
        return None
    return AuthUser(sub=_subject(claims)).user_id


def _subject(claims: dict[str, Any]) -> str | None:
    subject = claims.get("sub")
    return str(subject) if subject is not None else None


async def get_current_user(request: Request) -> AuthUser:
    payload = decode_bearer_token(request)
    if payload is None:
        return AuthUser(sub=None)

    subject = _subject(payload)
    roles = payload.get("roles", [])
    if not isinstance(roles, list):
        roles = []
    if subject is not None:
        request.state.context.user_id = subject
        if subject.isdigit():
            set_actor_id(int(subject))
    return AuthUser(sub=subject, roles=[str(role) for role in roles])
