from __future__ import annotations

import logging
from zoneinfo import ZoneInfo

from opentelemetry import trace
from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import events
from app.commissions.models import BonusTier, CommissionRequest
from app.commissions.schemas import (
    CommissionRequestRead,
    NextTierRead,
    TierProgressRead,
    TierRead,
    WeeklyProgressRead,
)
from app.commissions.tiers import Tier, evaluate_tiers
from app.commissions.week import week_window
from app.core.clock import Clock, system_clock
from app.core.config import get_settings
from app.core.errors import AlreadySubmittedError, InvalidStateError, NotFoundError, ValidationError
from app.metrics import observe_commission_conflict, observe_commission_review
from app.pipeline.models import User
from app.pipeline.repository import JobRepository, job_repository
from app.platform.security.context import Actor
from app.platform.security.errors import ForbiddenError
from app.platform.security.rls import emit_denied
from app.platform.security.roles import Role, normalize_role


logger = logging.getLogger("app.commissions")
tracer = trace.get_tracer("app.commissions")

PENDING = "pending"
APPROVED = "approved"
DENIED = "denied"

# Roles allowed to look at another user's weekly progress.
PROGRESS_VIEWER_ROLES = frozenset({Role.OWNER, Role.ADMIN, Role.OFFICE})


class CommissionService:
    def __init__(self, repository: JobRepository | None = None, clock: Clock | None = None) -> None:
        self.repository = repository or job_repository
        self.clock = clock or system_clock

    def weekly_progress(
        self,
        session: Session,
        actor: Actor,
        target_user_id: int | None = None,
    ) -> WeeklyProgressRead:
        user_id = self._resolve_progress_target(actor, target_user_id)
        if user_id != actor.user_id and session.get(User, user_id) is None:
            raise NotFoundError("user", user_id)

        settings = get_settings()
        window = week_window(self.clock.now(), settings.commission_timezone)
        approved = session.scalar(
            select(func.count(CommissionRequest.id)).where(
                and_(
                    CommissionRequest.submitted_by == user_id,
                    CommissionRequest.status == APPROVED,
                    CommissionRequest.created_at >= window.start,
                    CommissionRequest.created_at < window.end_exclusive,
                )
            )
        ) or 0

        tiers = [
            Tier(required_deals=row.required_deals, bonus_amount=row.bonus_amount)
            for row in session.scalars(select(BonusTier).order_by(BonusTier.required_deals)).all()
        ]
        evaluation = evaluate_tiers(int(approved), tiers)

        tz = ZoneInfo(settings.commission_timezone)
        return WeeklyProgressRead(
            user_id=user_id,
            week_start=window.start.astimezone(tz),
            week_end=window.end.astimezone(tz),
            approved_deals_this_week=evaluation.approved_deals,
            current_tier=(
                TierRead(
                    required_deals=evaluation.current_tier.required_deals,
                    bonus_amount=evaluation.current_tier.bonus_amount,
                )
                if evaluation.current_tier is not None
                else None
            ),
            next_tier=(
                NextTierRead(
                    required_deals=evaluation.next_tier.required_deals,
                    bonus_amount=evaluation.next_tier.bonus_amount,
                    deals_remaining=evaluation.deals_remaining or 0,
                )
                if evaluation.next_tier is not None
                else None
            ),
            all_tiers=[
                TierProgressRead(
                    required_deals=item.tier.required_deals,
                    bonus_amount=item.tier.bonus_amount,
                    achieved=item.achieved,
                )
                for item in evaluation.all_tiers
            ],
        )

    def submit_for_bonus(
        self,
        session: Session,
        actor: Actor,
        job_id: int,
        payment_id: str | None = None,
    ) -> CommissionRequestRead:
        """Create the single active commission request for a job.

        The pre-check gives the common double-submit a clean answer; the partial
        unique index on (job_id) for non-denied rows settles concurrent submissions.
        """

        job = self.repository.get(session, job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        capabilities = self.repository.capabilities_for(session, actor, job)
        if not capabilities.view:
            emit_denied(resource="job", capability="view", resource_id=job_id, actor=actor)
            raise NotFoundError("job", job_id)
        if job.assigned_to != actor.user_id:
            emit_denied(resource="commission_request", capability="submit", resource_id=job_id, actor=actor)
            raise ForbiddenError("submit", "commission_request")

        if self._active_request(session, job_id) is not None:
            self._report_conflict(job_id, actor, detected_by="pre_check")
            raise AlreadySubmittedError(job_id)

        request = CommissionRequest(
            job_id=job_id,
            check_amount=job.amount_paid,
            payment_id=payment_id,
            status=PENDING,
            submitted_by=actor.user_id,
            created_at=self.clock.now(),
        )
        with tracer.start_as_current_span("commission.submit") as span:
            span.set_attribute("job_id", job_id)
            try:
                session.add(request)
                session.flush()
                session.commit()
            except IntegrityError:
                session.rollback()
                self._report_conflict(job_id, actor, detected_by="unique_index")
                raise AlreadySubmittedError(job_id) from None

        events.publish(
            events.build_envelope(
                "commission.submitted",
                actor_id=actor.user_id,
                payload={"request_id": request.id, "job_id": job_id, "check_amount": str(request.check_amount)},
            )
        )
        logger.info("commission.submitted", extra={"request_id": request.id, "job_id": job_id, "actor_id": actor.user_id})
        return CommissionRequestRead.model_validate(request)

    def review_request(
        self,
        session: Session,
        actor: Actor,
        request_id: int,
        approved: bool,
        reason: str | None = None,
    ) -> CommissionRequestRead:
        self._require_owner(actor, "review")

        reason = (reason or "").strip() or None
        if not approved and reason is None:
            raise ValidationError("A denial reason is required when denying a request")

        request = session.get(CommissionRequest, request_id)
        if request is None:
            raise NotFoundError("commission request", request_id)
        if request.status != PENDING:
            raise InvalidStateError(f"Commission request is already {request.status}")

        outcome = APPROVED if approved else DENIED
        request.status = outcome
        request.denial_reason = None if approved else reason
        request.reviewed_by = actor.user_id
        request.reviewed_at = self.clock.now()
        session.commit()

        observe_commission_review(outcome)
        events.publish(
            events.build_envelope(
                "commission.reviewed",
                actor_id=actor.user_id,
                payload={"request_id": request.id, "job_id": request.job_id, "status": outcome},
            )
        )
        logger.info(
            "commission.reviewed",
            extra={"request_id": request.id, "job_id": request.job_id, "actor_id": actor.user_id, "status": outcome},
        )
        return CommissionRequestRead.model_validate(request)

    def list_pending_requests(self, session: Session, actor: Actor) -> list[CommissionRequestRead]:
        self._require_owner(actor, "review")
        rows = session.scalars(
            select(CommissionRequest)
            .where(CommissionRequest.status == PENDING)
            .order_by(CommissionRequest.created_at.desc(), CommissionRequest.id.desc())
        ).all()
        return [CommissionRequestRead.model_validate(row) for row in rows]

    def list_my_requests(self, session: Session, actor: Actor) -> list[CommissionRequestRead]:
        rows = session.scalars(
            select(CommissionRequest)
            .where(CommissionRequest.submitted_by == actor.user_id)
            .order_by(CommissionRequest.created_at.desc(), CommissionRequest.id.desc())
        ).all()
        return [CommissionRequestRead.model_validate(row) for row in rows]

    @staticmethod
    def _resolve_progress_target(actor: Actor, target_user_id: int | None) -> int:
        if not actor.is_active:
            emit_denied(resource="commission_progress", capability="view", resource_id=target_user_id, actor=actor)
            raise ForbiddenError("view", "commission_progress")

        role = normalize_role(actor.role)
        if role in PROGRESS_VIEWER_ROLES:
            return target_user_id or actor.user_id
        if role == Role.SALES_REP and target_user_id is not None and target_user_id != actor.user_id:
            emit_denied(resource="commission_progress", capability="view", resource_id=target_user_id, actor=actor)
            raise ForbiddenError("view", "commission_progress")
        return actor.user_id

    @staticmethod
    def _require_owner(actor: Actor, capability: str) -> None:
        if actor.is_active and normalize_role(actor.role) == Role.OWNER:
            return
        emit_denied(resource="commission_request", capability=capability, resource_id=None, actor=actor)
        raise ForbiddenError(capability, "commission_request")

    @staticmethod
    def _active_request(session: Session, job_id: int) -> CommissionRequest | None:
        return session.scalar(
            select(CommissionRequest).where(
                and_(CommissionRequest.job_id == job_id, CommissionRequest.status != DENIED)
            )
        )

    @staticmethod
    def _report_conflict(job_id: int, actor: Actor, *, detected_by: str) -> None:
        observe_commission_conflict(detected_by)
        logger.info(
            "commission.already_submitted",
            extra={"job_id": job_id, "actor_id": actor.user_id, "code": detected_by},
        )


commission_service = CommissionService()
