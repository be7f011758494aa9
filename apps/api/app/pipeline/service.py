from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from opentelemetry import trace
from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import events
from app.core.clock import Clock, system_clock
from app.core.config import get_settings
from app.core.errors import NotFoundError, ValidationError
from app.history.recorder import AuditTrailRecorder, EditType, FieldDiff, audit_trail_recorder
from app.history.serialization import values_equal
from app.lien_rights.tracker import LienStatus, compute_expiry
from app.pipeline.models import Job, User
from app.pipeline.repository import JobRepository, job_repository
from app.pipeline.schemas import (
    CapabilitiesRead,
    JobCreate,
    JobRead,
    JobScopeOfWorkRead,
    JobUpdate,
    TeamMemberUpdate,
    UserRead,
)
from app.pipeline.status_catalog import EARLY_STATUSES, JobStatus
from app.platform.security.capabilities import CapabilitySet
from app.platform.security.context import Actor
from app.platform.security.errors import ForbiddenError
from app.platform.security.policies import actor_capabilities, can_create_jobs, resolve_job_capabilities
from app.platform.security.rls import emit_denied, require_actor_capability, require_capability
from app.platform.security.roles import ROLE_CATALOG, Role, normalize_role


logger = logging.getLogger("app.pipeline")
tracer = trace.get_tracer("app.pipeline")

CENTS = Decimal("0.01")

# Order in which initial values are written to the history on create.
TRACKED_FIELDS = (
    "customer_name",
    "address",
    "phone",
    "email",
    "status",
    "assigned_to",
    "deal_type",
    "priority",
    "scope_of_work",
    "scheduled_date",
    "internal_notes",
    "customer_status_message",
    "project_completed_at",
    "lien_rights_status",
    "lien_rights_expires_at",
    "amount_paid",
)
FINANCIAL_FIELDS = frozenset({"amount_paid"})
REQUIRED_TEXT_FIELDS = frozenset({"customer_name"})


def lien_window() -> timedelta:
    return timedelta(days=get_settings().lien_rights_window_days)


def capabilities_read(capabilities: CapabilitySet) -> CapabilitiesRead:
    return CapabilitiesRead(**asdict(capabilities))


def _normalize_changes(changes: dict[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for field_name, value in changes.items():
        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, str) and field_name in REQUIRED_TEXT_FIELDS:
            value = value.strip()
        if field_name == "amount_paid" and value is not None:
            value = Decimal(value).quantize(CENTS)
        normalized[field_name] = value
    return normalized


def _edit_type_for(field_name: str) -> EditType | None:
    if field_name == "status":
        return EditType.STATUS_CHANGE
    if field_name == "assigned_to":
        return EditType.ASSIGN
    return None


class JobService:
    """Mutation entry point for jobs: authorize, apply, diff, record."""

    def __init__(
        self,
        repository: JobRepository | None = None,
        recorder: AuditTrailRecorder | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.repository = repository or job_repository
        self.recorder = recorder or audit_trail_recorder
        self.clock = clock or system_clock

    def create_job(self, session: Session, actor: Actor, dto: JobCreate) -> JobRead:
        if not can_create_jobs(actor):
            emit_denied(resource="job", capability="create", resource_id=None, actor=actor)
            raise ForbiddenError("create", "job")

        now = self.clock.now()
        values = _normalize_changes(dto.model_dump())
        if not values["customer_name"]:
            raise ValidationError("customer_name is required")

        provided = set(dto.model_fields_set) | {"status"}
        if values.get("assigned_to") is None and ROLE_CATALOG[normalize_role(actor.role)].scoped_to_assignment:
            values["assigned_to"] = actor.user_id
            provided.add("assigned_to")
        self._check_assignment(session, actor, values["assigned_to"], job_id=None)

        self._check_contact_details(values["status"], values.get("phone"), values.get("email"))

        with tracer.start_as_current_span("pipeline.job.create") as span:
            job = Job(**values, created_at=now, updated_at=now)
            if values["status"] == JobStatus.COMPLETED:
                lien_changes = self._lien_changes_on_completion(job, {}, now)
                for field_name, value in lien_changes.items():
                    setattr(job, field_name, value)
                provided.update(lien_changes)

            session.add(job)
            session.flush()
            span.set_attribute("job_id", job.id)

            diffs = [
                FieldDiff(field_name, None, getattr(job, field_name))
                for field_name in TRACKED_FIELDS
                if field_name in provided
            ]
            self.recorder.record_mutation(session, actor, job.id, diffs, EditType.CREATE, now=now)
            events.publish(
                events.build_envelope(
                    "pipeline.job.created",
                    actor_id=actor.user_id,
                    payload={"job_id": job.id, "status": job.status, "assigned_to": job.assigned_to},
                )
            )
            self._commit(session)

        logger.info("pipeline.job.created", extra={"job_id": job.id, "actor_id": actor.user_id})
        capabilities = self.repository.capabilities_for(session, actor, job)
        return self._to_full_read(job, capabilities)

    def get_job(self, session: Session, actor: Actor, job_id: int) -> JobRead | JobScopeOfWorkRead:
        job = self._load(session, job_id)
        capabilities = self.repository.enforce(session, actor, job, "view")
        return self._to_read(job, capabilities)

    def list_jobs(
        self,
        session: Session,
        actor: Actor,
        filters: dict[str, Any],
        cursor: str | None = None,
        limit: int = 50,
    ) -> list[JobRead | JobScopeOfWorkRead]:
        stmt = self.repository.scoped_query(session, actor)

        if filters.get("status"):
            stmt = stmt.where(Job.status == str(filters["status"]))
        if filters.get("deal_type"):
            stmt = stmt.where(Job.deal_type == str(filters["deal_type"]))
        if filters.get("assigned_to") is not None:
            stmt = stmt.where(Job.assigned_to == filters["assigned_to"])
        if filters.get("search"):
            stmt = stmt.where(Job.customer_name.ilike(f"%{filters['search']}%"))

        offset = int(cursor) if cursor and cursor.isdigit() else 0
        stmt = stmt.order_by(Job.created_at.desc(), Job.id.desc()).offset(offset).limit(limit)
        jobs = session.scalars(stmt).all()

        team_member_ids = self.repository.policy_engine.team_snapshot(session, actor)
        return [self._to_read(job, resolve_job_capabilities(actor, job, team_member_ids)) for job in jobs]

    def update_job(self, session: Session, actor: Actor, job_id: int, dto: JobUpdate) -> JobRead:
        job = self._load(session, job_id)
        capabilities = self.repository.enforce(session, actor, job, "edit")

        changes = _normalize_changes(dto.model_dump(exclude_unset=True))
        if "customer_name" in changes and not changes["customer_name"]:
            raise ValidationError("customer_name cannot be empty")
        if "amount_paid" in changes:
            if changes["amount_paid"] is None:
                raise ValidationError("amount_paid cannot be null")
            require_capability(capabilities, "view_financials", resource="job", resource_id=job.id, actor=actor)

        if "assigned_to" in changes and changes["assigned_to"] != job.assigned_to:
            self._check_assignment(session, actor, changes["assigned_to"], job_id=job.id)

        if "status" in changes and changes["status"] is None:
            changes.pop("status")
        new_status = changes.get("status", job.status)
        if new_status != job.status:
            self._check_contact_details(
                new_status,
                changes.get("phone", job.phone),
                changes.get("email", job.email),
            )

        now = self.clock.now()
        changes.update(self._lien_changes_on_completion(job, changes, now))

        with tracer.start_as_current_span("pipeline.job.update") as span:
            span.set_attribute("job_id", job.id)
            diffs: list[FieldDiff] = []
            for field_name, new_value in changes.items():
                old_value = getattr(job, field_name)
                if values_equal(old_value, new_value):
                    continue
                diffs.append(FieldDiff(field_name, old_value, new_value, _edit_type_for(field_name)))
                setattr(job, field_name, new_value)

            if not diffs:
                return self._to_full_read(job, capabilities)

            job.updated_at = now
            self.recorder.record_mutation(session, actor, job.id, diffs, EditType.UPDATE, now=now)
            span.set_attribute("field_count", len(diffs))
            events.publish(
                events.build_envelope(
                    "pipeline.job.updated",
                    actor_id=actor.user_id,
                    payload={"job_id": job.id, "fields": [diff.field for diff in diffs], "status": job.status},
                )
            )
            self._commit(session)

        logger.info(
            "pipeline.job.updated",
            extra={"job_id": job.id, "actor_id": actor.user_id, "field_count": len(diffs)},
        )
        return self._to_full_read(job, self.repository.capabilities_for(session, actor, job))

    def delete_job(self, session: Session, actor: Actor, job_id: int) -> None:
        job = self._load(session, job_id)
        self.repository.enforce(session, actor, job, "delete")

        now = self.clock.now()
        with tracer.start_as_current_span("pipeline.job.delete") as span:
            span.set_attribute("job_id", job.id)
            self.recorder.record_mutation(
                session,
                actor,
                job.id,
                [FieldDiff("deleted_at", None, now)],
                EditType.DELETE,
                now=now,
            )
            job.deleted_at = now
            job.updated_at = now
            events.publish(
                events.build_envelope("pipeline.job.deleted", actor_id=actor.user_id, payload={"job_id": job.id})
            )
            self._commit(session)

        logger.info("pipeline.job.deleted", extra={"job_id": job_id, "actor_id": actor.user_id})

    def job_capabilities(self, session: Session, actor: Actor, job_id: int) -> CapabilitySet:
        job = self._load(session, job_id)
        return self.repository.enforce(session, actor, job, "view")

    def _load(self, session: Session, job_id: int) -> Job:
        job = self.repository.get(session, job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        return job

    def _lien_changes_on_completion(self, job: Job, changes: dict[str, Any], now: datetime) -> dict[str, Any]:
        """Derived lien fields for a job entering ``completed`` or changing its completion date."""

        new_status = changes.get("status", job.status)
        entering_completed = new_status == JobStatus.COMPLETED and (
            job.status != JobStatus.COMPLETED or job.id is None
        )
        completion_changed = changes.get("project_completed_at") is not None
        if not entering_completed and not completion_changed:
            return {}

        current_lien_status = job.lien_rights_status or LienStatus.NOT_APPLICABLE
        if current_lien_status not in (LienStatus.NOT_APPLICABLE, LienStatus.PENDING):
            return {}

        derived: dict[str, Any] = {}
        completed_at = changes.get("project_completed_at") or job.project_completed_at
        if completed_at is None:
            completed_at = now
            derived["project_completed_at"] = completed_at

        if entering_completed or current_lien_status == LienStatus.PENDING:
            derived["lien_rights_expires_at"] = compute_expiry(completed_at, lien_window())
            derived["lien_rights_status"] = LienStatus.PENDING.value
        return derived

    def _check_assignment(self, session: Session, actor: Actor, assigned_to: int | None, *, job_id: int | None) -> None:
        """Scoped roles may only hand a job to themselves or, for team leads, to their team."""

        if not ROLE_CATALOG[normalize_role(actor.role)].scoped_to_assignment:
            return
        allowed = self.repository.policy_engine.team_snapshot(session, actor) | {actor.user_id}
        if assigned_to in allowed:
            return
        emit_denied(resource="job", capability="assign", resource_id=job_id, actor=actor)
        raise ForbiddenError("assign", "job")

    @staticmethod
    def _check_contact_details(status: str, phone: str | None, email: str | None) -> None:
        if JobStatus(status) in EARLY_STATUSES:
            return
        missing = [name for name, value in (("phone", phone), ("email", email)) if not value]
        if missing:
            raise ValidationError(
                f"{' and '.join(missing)} required before moving a job past appointment_set"
            )

    @staticmethod
    def _commit(session: Session) -> None:
        try:
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise

    def _to_read(self, job: Job, capabilities: CapabilitySet) -> JobRead | JobScopeOfWorkRead:
        if capabilities.scope_of_work_only:
            return JobScopeOfWorkRead.model_validate(job)
        return self._to_full_read(job, capabilities)

    @staticmethod
    def _to_full_read(job: Job, capabilities: CapabilitySet) -> JobRead:
        read = JobRead.model_validate(job)
        if not capabilities.view_financials:
            read = read.model_copy(update={field_name: None for field_name in FINANCIAL_FIELDS})
        return read


class TeamService:
    def update_team_member(
        self,
        session: Session,
        actor: Actor,
        user_id: int,
        dto: TeamMemberUpdate,
    ) -> UserRead:
        require_actor_capability(actor_capabilities(actor), "manage_team", resource="team", actor=actor)

        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("user", user_id)

        changes = _normalize_changes(dto.model_dump(exclude_unset=True))
        if changes.get("role", "") is None:
            raise ValidationError("role cannot be null")
        if changes.get("is_active", True) is None:
            raise ValidationError("is_active cannot be null")

        team_lead_id = changes.get("team_lead_id")
        if team_lead_id is not None:
            if team_lead_id == user_id:
                raise ValidationError("a user cannot be their own team lead")
            lead = session.scalar(select(User).where(and_(User.id == team_lead_id, User.is_active.is_(True))))
            if lead is None or normalize_role(lead.role) != Role.TEAM_LEAD:
                raise ValidationError("team_lead_id must reference an active team lead")

        for field_name, value in changes.items():
            setattr(user, field_name, value)
        session.commit()
        session.refresh(user)

        logger.info("team.member_updated", extra={"actor_id": actor.user_id, "resource_id": user_id})
        return UserRead.model_validate(user)


job_service = JobService()
team_service = TeamService()
