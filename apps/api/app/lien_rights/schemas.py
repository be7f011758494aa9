from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from app.lien_rights.tracker import LienState, LienStatus, LienUrgency


class IntegrityWarningRead(BaseModel):
    job_id: int
    code: str
    message: str


class LienStateRead(BaseModel):
    job_id: int
    status: LienStatus
    expires_at: datetime | None
    urgency: LienUrgency | None
    days_remaining: int | None
    days_since_completion: int | None
    integrity_warning: IntegrityWarningRead | None = None

    @classmethod
    def from_state(cls, job_id: int, state: LienState) -> LienStateRead:
        warning = state.integrity_warning
        return cls(
            job_id=job_id,
            status=state.status,
            expires_at=state.expires_at,
            urgency=state.urgency,
            days_remaining=state.days_remaining,
            days_since_completion=state.days_since_completion,
            integrity_warning=(
                IntegrityWarningRead(job_id=warning.job_id, code=warning.code, message=warning.message)
                if warning is not None
                else None
            ),
        )


class LienJobRead(BaseModel):
    job_id: int
    customer_name: str
    address: str | None
    assigned_to: int | None
    job_status: str
    project_completed_at: datetime | None
    lien: LienStateRead


class LienAlertSummary(BaseModel):
    warning_count: int
    critical_count: int
    warning_jobs: list[LienJobRead]
    critical_jobs: list[LienJobRead]
    integrity_warnings: list[IntegrityWarningRead]


class LienSweepResult(BaseModel):
    expired_job_ids: list[int]
