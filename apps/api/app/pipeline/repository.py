from __future__ import annotations

from typing import Any

from sqlalchemy import Select, and_, select
from sqlalchemy.orm import Session

from app.pipeline.models import Job
from app.platform.security.context import Actor
from app.platform.security.repository import BaseRepository


class JobRepository(BaseRepository):
    resource = "job"

    def assignee_column(self) -> Any:
        return Job.assigned_to

    def get(self, session: Session, job_id: int) -> Job | None:
        return session.scalar(select(Job).where(and_(Job.id == job_id, Job.deleted_at.is_(None))))

    def scoped_query(self, session: Session, actor: Actor) -> Select[tuple[Job]]:
        return self.apply_scope_query(session, select(Job).where(Job.deleted_at.is_(None)), actor)


job_repository = JobRepository()
