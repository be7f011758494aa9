from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.pipeline.status_catalog import DealType, JobPriority, JobStatus
from app.platform.security.roles import Role


class JobCreate(BaseModel):
    customer_name: str = Field(min_length=1)
    address: str | None = None
    phone: str | None = None
    email: EmailStr | None = None
    status: JobStatus = JobStatus.LEAD
    assigned_to: int | None = None
    deal_type: DealType | None = None
    priority: JobPriority | None = None
    scope_of_work: str | None = None
    scheduled_date: date | None = None
    internal_notes: str | None = None
    customer_status_message: str | None = None
    amount_paid: Decimal = Field(default=Decimal("0.00"), ge=0)


class JobUpdate(BaseModel):
    """Partial update; only fields present in the payload are applied."""

    customer_name: str | None = Field(default=None, min_length=1)
    address: str | None = None
    phone: str | None = None
    email: EmailStr | None = None
    status: JobStatus | None = None
    assigned_to: int | None = None
    deal_type: DealType | None = None
    priority: JobPriority | None = None
    scope_of_work: str | None = None
    scheduled_date: date | None = None
    internal_notes: str | None = None
    customer_status_message: str | None = None
    project_completed_at: datetime | None = None
    amount_paid: Decimal | None = Field(default=None, ge=0)


class JobRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: JobStatus
    assigned_to: int | None
    customer_name: str
    address: str | None
    phone: str | None
    email: str | None
    deal_type: DealType | None
    priority: JobPriority | None
    scope_of_work: str | None
    scheduled_date: date | None
    internal_notes: str | None
    customer_status_message: str | None
    project_completed_at: datetime | None
    lien_rights_status: str
    lien_rights_expires_at: datetime | None
    amount_paid: Decimal | None = None
    created_at: datetime
    updated_at: datetime


class JobScopeOfWorkRead(BaseModel):
    """Read-only projection shared with field crews."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    status: JobStatus
    customer_name: str
    address: str | None
    scope_of_work: str | None
    scheduled_date: date | None


class CapabilitiesRead(BaseModel):
    view: bool
    edit: bool
    delete: bool
    view_history: bool
    manage_team: bool
    upload_photos: bool
    view_financials: bool


class JobStatusRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: JobStatus
    label: str
    color: str
    position: int
    is_terminal: bool


class TeamMemberUpdate(BaseModel):
    role: Role | None = None
    team_lead_id: int | None = None
    rep_code: str | None = None
    is_active: bool | None = None


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str | None
    role: str
    team_lead_id: int | None
    rep_code: str | None
    is_active: bool
