from __future__ import annotations

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from app.pipeline.models import User
from app.platform.security.roles import Role, normalize_role


class TeamHierarchyResolver:
    """Resolves the users reporting to a team lead.

    The hierarchy is exactly one level deep. Results are read from the session on
    every call, so a change to a user's team_lead_id is visible immediately.
    """

    def team_member_ids(self, session: Session, team_lead_id: int) -> frozenset[int]:
        lead = session.scalar(select(User).where(User.id == team_lead_id))
        if lead is None or not lead.is_active or normalize_role(lead.role) != Role.TEAM_LEAD:
            return frozenset()

        rows = session.scalars(
            select(User.id).where(and_(User.team_lead_id == team_lead_id, User.id != team_lead_id))
        ).all()
        return frozenset(int(row) for row in rows)


team_hierarchy_resolver = TeamHierarchyResolver()
