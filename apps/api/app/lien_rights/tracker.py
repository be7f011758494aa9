"""Lien-rights deadline tracking.

A completed job opens a statutory window during which the contractor may file a
lien. The expiry date is fixed when the job enters ``completed``; urgency is then a
pure function of the current time against that date.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from app.core.clock import ensure_utc
from app.core.errors import DataIntegrityWarning
from app.metrics import observe_lien_integrity_warning
from app.pipeline.models import Job
from app.pipeline.status_catalog import JobStatus


logger = logging.getLogger("app.lien_rights")

CRITICAL_THRESHOLD = timedelta(days=14)
WARNING_THRESHOLD = timedelta(days=30)
MISSING_COMPLETION_DATE = "lien.missing_completion_date"


class LienStatus(StrEnum):
    NOT_APPLICABLE = "not_applicable"
    PENDING = "pending"
    SENT = "sent"
    EXPIRED = "expired"
    WAIVED = "waived"


class LienUrgency(StrEnum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    EXPIRED = "expired"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    LienUrgency.NORMAL: 0,
    LienUrgency.WARNING: 1,
    LienUrgency.CRITICAL: 2,
    LienUrgency.EXPIRED: 3,
}

# Set only by an explicit actor action, never derived.
ACTOR_CONTROLLED_STATUSES = frozenset({LienStatus.SENT, LienStatus.WAIVED})


@dataclass(frozen=True, slots=True)
class LienState:
    status: LienStatus
    expires_at: datetime | None
    urgency: LienUrgency | None
    days_remaining: int | None = None
    days_since_completion: int | None = None
    integrity_warning: DataIntegrityWarning | None = None


def compute_expiry(completed_at: datetime, window: timedelta) -> datetime:
    return ensure_utc(completed_at) + window


def urgency_for(expires_at: datetime, now: datetime) -> LienUrgency:
    expires_at = ensure_utc(expires_at)
    now = ensure_utc(now)
    if now > expires_at:
        return LienUrgency.EXPIRED
    remaining = expires_at - now
    if remaining < CRITICAL_THRESHOLD:
        return LienUrgency.CRITICAL
    if remaining < WARNING_THRESHOLD:
        return LienUrgency.WARNING
    return LienUrgency.NORMAL


def _days_between(start: datetime, end: datetime) -> int:
    return math.ceil((ensure_utc(end) - ensure_utc(start)).total_seconds() / 86400)


def _stored_status(job: Job) -> LienStatus:
    try:
        return LienStatus(job.lien_rights_status or LienStatus.NOT_APPLICABLE)
    except ValueError:
        return LienStatus.NOT_APPLICABLE


def derive_lien_state(job: Job, now: datetime, window: timedelta) -> LienState:
    """Derive lien status and urgency for a job at ``now``.

    Never raises. A completed job with no completion date is reported through
    ``integrity_warning`` instead.
    """

    completed_at = job.project_completed_at
    stored_status = _stored_status(job)
    is_completed = job.status == JobStatus.COMPLETED

    if not is_completed and completed_at is None:
        return LienState(status=LienStatus.NOT_APPLICABLE, expires_at=None, urgency=None)

    warning: DataIntegrityWarning | None = None
    if completed_at is None:
        warning = DataIntegrityWarning(
            job_id=job.id,
            code=MISSING_COMPLETION_DATE,
            message="Job is completed but has no project completion date",
        )
        _report_integrity_warning(warning)

    expires_at: datetime | None
    if job.lien_rights_expires_at is not None:
        expires_at = ensure_utc(job.lien_rights_expires_at)
    elif completed_at is not None:
        expires_at = compute_expiry(completed_at, window)
    else:
        expires_at = None

    days_since = _days_between(completed_at, now) if completed_at is not None else None

    if stored_status in ACTOR_CONTROLLED_STATUSES:
        return LienState(
            status=stored_status,
            expires_at=expires_at,
            urgency=None,
            days_since_completion=days_since,
            integrity_warning=warning,
        )

    if expires_at is None:
        return LienState(
            status=LienStatus.PENDING if stored_status == LienStatus.NOT_APPLICABLE else stored_status,
            expires_at=None,
            urgency=None,
            integrity_warning=warning,
        )

    urgency = urgency_for(expires_at, now)
    if stored_status == LienStatus.EXPIRED:
        urgency = LienUrgency.EXPIRED
    status = LienStatus.EXPIRED if urgency == LienUrgency.EXPIRED else LienStatus.PENDING
    return LienState(
        status=status,
        expires_at=expires_at,
        urgency=urgency,
        days_remaining=_days_between(now, expires_at),
        days_since_completion=days_since,
        integrity_warning=warning,
    )


def _report_integrity_warning(warning: DataIntegrityWarning) -> None:
    observe_lien_integrity_warning(warning.code)
    logger.warning("lien.integrity_warning", extra={"job_id": warning.job_id, "code": warning.code})
