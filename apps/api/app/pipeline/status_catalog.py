"""Ordered job status catalog.

Display metadata for pipeline visualisation only. There is no transition graph:
any status may be set from any other.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class JobStatus(StrEnum):
    LEAD = "lead"
    APPOINTMENT_SET = "appointment_set"
    PROSPECT = "prospect"
    APPROVED = "approved"
    PROJECT_SCHEDULED = "project_scheduled"
    COMPLETED = "completed"
    INVOICED = "invoiced"
    LIEN_LEGAL = "lien_legal"
    CLOSED_DEAL = "closed_deal"
    CLOSED_LOST = "closed_lost"


class DealType(StrEnum):
    INSURANCE = "insurance"
    CASH = "cash"
    FINANCED = "financed"


class JobPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(frozen=True, slots=True)
class StatusInfo:
    status: JobStatus
    label: str
    color: str
    position: int
    is_terminal: bool = False


STATUS_CATALOG: tuple[StatusInfo, ...] = (
    StatusInfo(JobStatus.LEAD, "Lead", "slate", 0),
    StatusInfo(JobStatus.APPOINTMENT_SET, "Appointment Set", "sky", 1),
    StatusInfo(JobStatus.PROSPECT, "Prospect", "indigo", 2),
    StatusInfo(JobStatus.APPROVED, "Approved", "violet", 3),
    StatusInfo(JobStatus.PROJECT_SCHEDULED, "Project Scheduled", "amber", 4),
    StatusInfo(JobStatus.COMPLETED, "Completed", "emerald", 5),
    StatusInfo(JobStatus.INVOICED, "Invoiced", "teal", 6),
    StatusInfo(JobStatus.LIEN_LEGAL, "Lien / Legal", "rose", 7),
    StatusInfo(JobStatus.CLOSED_DEAL, "Closed Deal", "green", 8, is_terminal=True),
    StatusInfo(JobStatus.CLOSED_LOST, "Closed Lost", "zinc", 9, is_terminal=True),
)

# Statuses a job may hold before contact details are mandatory.
EARLY_STATUSES = frozenset({JobStatus.LEAD, JobStatus.APPOINTMENT_SET})
