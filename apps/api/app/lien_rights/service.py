from __future__ import annotations

import logging

from opentelemetry import trace
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app import events
from app.core.clock import Clock, system_clock
from app.core.errors import InvalidStateError, NotFoundError
from app.history.recorder import AuditTrailRecorder, EditType, FieldDiff, audit_trail_recorder
from app.lien_rights.schemas import IntegrityWarningRead, LienAlertSummary, LienJobRead, LienStateRead, LienSweepResult
from app.lien_rights.tracker import LienState, LienStatus, LienUrgency, derive_lien_state
from app.pipeline.models import Job
from app.pipeline.repository import JobRepository, job_repository
from app.pipeline.service import lien_window
from app.pipeline.status_catalog import JobStatus
from app.platform.security.context import Actor
from app.platform.security.errors import ForbiddenError
from app.platform.security.rls import emit_denied
from app.platform.security.roles import ROLE_CATALOG, Role, normalize_role


logger = logging.getLogger("app.lien_rights")
tracer = trace.get_tracer("app.lien_rights")

ALERT_LIST_SIZE = 5
SWEEP_ROLES = frozenset({Role.OWNER, Role.ADMIN, Role.OFFICE})


class LienRightsService:
    def __init__(
        self,
        repository: JobRepository | None = None,
        recorder: AuditTrailRecorder | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.repository = repository or job_repository
        self.recorder = recorder or audit_trail_recorder
        self.clock = clock or system_clock

    def job_lien_state(self, session: Session, actor: Actor, job_id: int) -> LienStateRead:
        job = self._load(session, job_id)
        self.repository.enforce(session, actor, job, "view_financials")
        return LienStateRead.from_state(job.id, derive_lien_state(job, self.clock.now(), lien_window()))

    def lien_rights_jobs(self, session: Session, actor: Actor) -> list[LienJobRead]:
        """Every lien-tracked job in the actor's scope, soonest deadline first."""

        return [self._to_job_read(job, state) for job, state in self._evaluate_scope(session, actor)]

    def critical_lien_jobs(self, session: Session, actor: Actor) -> list[LienJobRead]:
        return [
            self._to_job_read(job, state)
            for job, state in self._evaluate_scope(session, actor)
            if state.urgency == LienUrgency.CRITICAL
        ]

    def alert_summary(self, session: Session, actor: Actor) -> LienAlertSummary:
        evaluated = self._evaluate_scope(session, actor)
        warning_jobs = [self._to_job_read(job, state) for job, state in evaluated if state.urgency == LienUrgency.WARNING]
        critical_jobs = [
            self._to_job_read(job, state) for job, state in evaluated if state.urgency == LienUrgency.CRITICAL
        ]
        integrity_warnings = [
            IntegrityWarningRead(job_id=warning.job_id, code=warning.code, message=warning.message)
            for _, state in evaluated
            if (warning := state.integrity_warning) is not None
        ]
        return LienAlertSummary(
            warning_count=len(warning_jobs),
            critical_count=len(critical_jobs),
            warning_jobs=warning_jobs[:ALERT_LIST_SIZE],
            critical_jobs=critical_jobs[:ALERT_LIST_SIZE],
            integrity_warnings=integrity_warnings,
        )

    def mark_lien_sent(self, session: Session, actor: Actor, job_id: int) -> LienStateRead:
        return self._transition(session, actor, job_id, LienStatus.SENT, allowed_from={LienStatus.PENDING})

    def waive_lien_rights(self, session: Session, actor: Actor, job_id: int) -> LienStateRead:
        return self._transition(
            session,
            actor,
            job_id,
            LienStatus.WAIVED,
            allowed_from={LienStatus.PENDING, LienStatus.EXPIRED},
        )

    def expire_overdue(self, session: Session, actor: Actor) -> LienSweepResult:
        """Persist pending -> expired for every overdue job."""

        if not actor.is_active or normalize_role(actor.role) not in SWEEP_ROLES:
            emit_denied(resource="lien_rights", capability="expire_overdue", resource_id=None, actor=actor)
            raise ForbiddenError("expire_overdue", "lien_rights")

        now = self.clock.now()
        window = lien_window()
        candidates = session.scalars(
            self.repository.scoped_query(session, actor).where(Job.lien_rights_status == LienStatus.PENDING.value)
        ).all()

        expired_ids: list[int] = []
        with tracer.start_as_current_span("lien_rights.expire_overdue") as span:
            for job in candidates:
                state = derive_lien_state(job, now, window)
                if state.status != LienStatus.EXPIRED:
                    continue
                self.recorder.record_mutation(
                    session,
                    actor,
                    job.id,
                    [FieldDiff("lien_rights_status", job.lien_rights_status, LienStatus.EXPIRED.value)],
                    EditType.UPDATE,
                    now=now,
                )
                job.lien_rights_status = LienStatus.EXPIRED.value
                job.updated_at = now
                expired_ids.append(job.id)
            span.set_attribute("expired_count", len(expired_ids))
            session.commit()

        logger.info("lien.expired_overdue", extra={"actor_id": actor.user_id, "field_count": len(expired_ids)})
        return LienSweepResult(expired_job_ids=expired_ids)

    def _transition(
        self,
        session: Session,
        actor: Actor,
        job_id: int,
        target: LienStatus,
        *,
        allowed_from: set[LienStatus],
    ) -> LienStateRead:
        job = self._load(session, job_id)
        self.repository.enforce(session, actor, job, "edit")

        now = self.clock.now()
        window = lien_window()
        current = derive_lien_state(job, now, window)
        if current.status not in allowed_from:
            raise InvalidStateError(f"Cannot mark lien rights {target.value} while {current.status.value}")

        with tracer.start_as_current_span("lien_rights.transition") as span:
            span.set_attribute("job_id", job.id)
            span.set_attribute("lien_rights_status", target.value)
            self.recorder.record_mutation(
                session,
                actor,
                job.id,
                [FieldDiff("lien_rights_status", job.lien_rights_status, target.value)],
                EditType.UPDATE,
                now=now,
            )
            job.lien_rights_status = target.value
            job.updated_at = now
            events.publish(
                events.build_envelope(
                    "pipeline.job.updated",
                    actor_id=actor.user_id,
                    payload={"job_id": job.id, "fields": ["lien_rights_status"], "status": job.status},
                )
            )
            session.commit()

        logger.info("lien.status_changed", extra={"job_id": job.id, "actor_id": actor.user_id, "status": target.value})
        return LienStateRead.from_state(job.id, derive_lien_state(job, now, window))

    def _evaluate_scope(self, session: Session, actor: Actor) -> list[tuple[Job, LienState]]:
        if not ROLE_CATALOG[normalize_role(actor.role)].base_capabilities.view_financials:
            return []
        stmt = self.repository.scoped_query(session, actor).where(
            or_(
                Job.status == JobStatus.COMPLETED.value,
                Job.project_completed_at.is_not(None),
                Job.lien_rights_status != LienStatus.NOT_APPLICABLE.value,
            )
        )
        jobs = session.scalars(stmt.order_by(Job.id)).all()

        now = self.clock.now()
        window = lien_window()
        evaluated = [(job, derive_lien_state(job, now, window)) for job in jobs]
        evaluated = [(job, state) for job, state in evaluated if state.status != LienStatus.NOT_APPLICABLE]
        evaluated.sort(key=lambda item: (item[1].expires_at is None, item[1].expires_at or now, item[0].id))
        return evaluated

    def _load(self, session: Session, job_id: int) -> Job:
        job = self.repository.get(session, job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        return job

    @staticmethod
    def _to_job_read(job: Job, state: LienState) -> LienJobRead:
        return LienJobRead(
            job_id=job.id,
            customer_name=job.customer_name,
            address=job.address,
            assigned_to=job.assigned_to,
            job_status=job.status,
            project_completed_at=job.project_completed_at,
            lien=LienStateRead.from_state(job.id, state),
        )


lien_rights_service = LienRightsService()
