from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.platform.security.roles import Role, normalize_role

if TYPE_CHECKING:
    from app.pipeline.models import User


@dataclass(slots=True)
class Actor:
    """The user performing an operation, passed explicitly to every policy check."""

    user_id: int
    role: Role
    team_lead_id: int | None = None
    is_active: bool = True
    correlation_id: str | None = None

    @classmethod
    def from_user(cls, user: User, *, correlation_id: str | None = None) -> Actor:
        return cls(
            user_id=user.id,
            role=normalize_role(user.role),
            team_lead_id=user.team_lead_id,
            is_active=bool(user.is_active),
            correlation_id=correlation_id,
        )
