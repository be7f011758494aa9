from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.errors import NotFoundError
from app.history.models import EditHistoryEntry
from app.history.schemas import EditHistoryRead
from app.history.serialization import deserialize_field, serialize_value
from app.metrics import observe_audit_entries_written
from app.pipeline.models import Job
from app.platform.security.context import Actor
from app.platform.security.policies import AccessPolicyEngine, access_policy_engine, actor_capabilities
from app.platform.security.rls import require_actor_capability, require_capability


logger = logging.getLogger("app.history")

DEFAULT_HISTORY_LIMIT = 50


class EditType(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ASSIGN = "assign"
    STATUS_CHANGE = "status_change"


@dataclass(frozen=True, slots=True)
class FieldDiff:
    field: str
    old_value: Any
    new_value: Any
    edit_type: EditType | None = None


class AuditTrailRecorder:
    def __init__(self, policy_engine: AccessPolicyEngine | None = None, clock: Clock | None = None) -> None:
        self.policy_engine = policy_engine or access_policy_engine
        self.clock = clock or system_clock

    def record_mutation(
        self,
        session: Session,
        actor: Actor,
        job_id: int,
        diffs: list[FieldDiff],
        edit_type: EditType,
        *,
        now: datetime | None = None,
    ) -> list[EditHistoryEntry]:
        """Stage one history row per changed field in the caller's transaction.

        Nothing is committed here; the caller commits the job update and these rows
        together. Diffs whose canonical old and new values match are dropped.
        """

        created_at = now or self.clock.now()
        entries: list[EditHistoryEntry] = []
        for diff in diffs:
            old_text = serialize_value(diff.old_value)
            new_text = serialize_value(diff.new_value)
            if old_text == new_text:
                continue
            entries.append(
                EditHistoryEntry(
                    job_id=job_id,
                    field_name=diff.field,
                    old_value=old_text,
                    new_value=new_text,
                    edit_type=str(diff.edit_type or edit_type),
                    actor_id=actor.user_id,
                    correlation_id=actor.correlation_id,
                    created_at=created_at,
                )
            )

        session.add_all(entries)
        for entry_type, count in Counter(entry.edit_type for entry in entries).items():
            observe_audit_entries_written(entry_type, count)
        return entries

    def get_history(
        self,
        session: Session,
        actor: Actor,
        job_id: int,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[EditHistoryRead]:
        job = session.scalar(select(Job).where(and_(Job.id == job_id, Job.deleted_at.is_(None))))
        if job is None:
            raise NotFoundError("job", job_id)

        capabilities = self.policy_engine.capabilities_for(session, actor, job)
        require_capability(capabilities, "view_history", resource="job", resource_id=job_id, actor=actor)

        rows = session.scalars(
            select(EditHistoryEntry)
            .where(EditHistoryEntry.job_id == job_id)
            .order_by(EditHistoryEntry.created_at.desc(), EditHistoryEntry.id.desc())
            .limit(limit)
        ).all()
        return [self._to_read(row) for row in rows]

    def delete_entry(self, session: Session, actor: Actor, entry_id: int) -> None:
        """Owner-only correction tool.

        No cascade, no reindex, and no history row for the deletion itself; the
        removal is only written to the application log.
        """

        require_actor_capability(actor_capabilities(actor), "delete", resource="edit_history", actor=actor)

        entry = session.get(EditHistoryEntry, entry_id)
        if entry is None:
            raise NotFoundError("history entry", entry_id)

        job_id = entry.job_id
        session.delete(entry)
        session.commit()
        logger.info(
            "history.entry_deleted",
            extra={"entry_id": entry_id, "job_id": job_id, "actor_id": actor.user_id},
        )

    def _to_read(self, entry: EditHistoryEntry) -> EditHistoryRead:
        return EditHistoryRead(
            id=entry.id,
            job_id=entry.job_id,
            field_name=entry.field_name,
            old_value=entry.old_value,
            new_value=entry.new_value,
            edit_type=entry.edit_type,
            actor_id=entry.actor_id,
            correlation_id=entry.correlation_id,
            created_at=entry.created_at,
        )


def restore_values(entry: EditHistoryRead) -> tuple[Any, Any]:
    """Old and new values of a history entry in the Job column's Python type."""

    return (
        deserialize_field(entry.field_name, entry.old_value),
        deserialize_field(entry.field_name, entry.new_value),
    )


audit_trail_recorder = AuditTrailRecorder()
