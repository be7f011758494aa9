"""Role catalog: the static table of CRM roles and their base capabilities.

Roles:
- owner: full access, including deletes, edit history and team management
- admin / office: office staff, view and edit every job and its history, no deletes
- team_lead: jobs of the lead and of the reps reporting to them
- sales_rep: only jobs assigned to the rep
- field_crew: read-only scope of work and photo uploads on jobs shared with them
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from app.platform.security.capabilities import FULL_CAPABILITIES, CapabilitySet


class Role(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    OFFICE = "office"
    TEAM_LEAD = "team_lead"
    SALES_REP = "sales_rep"
    FIELD_CREW = "field_crew"


_LEGACY_ROLES = {
    "project_manager": Role.SALES_REP,
}


@dataclass(frozen=True, slots=True)
class RoleDefinition:
    role: Role
    display_name: str
    base_capabilities: CapabilitySet
    can_create_jobs: bool
    scoped_to_assignment: bool


_SCOPED_EDITOR = CapabilitySet(view=True, edit=True, upload_photos=True, view_financials=True)

ROLE_CATALOG: dict[Role, RoleDefinition] = {
    Role.OWNER: RoleDefinition(
        role=Role.OWNER,
        display_name="Owner",
        base_capabilities=FULL_CAPABILITIES,
        can_create_jobs=True,
        scoped_to_assignment=False,
    ),
    Role.ADMIN: RoleDefinition(
        role=Role.ADMIN,
        display_name="Office Staff",
        base_capabilities=CapabilitySet(
            view=True, edit=True, view_history=True, upload_photos=True, view_financials=True
        ),
        can_create_jobs=True,
        scoped_to_assignment=False,
    ),
    Role.OFFICE: RoleDefinition(
        role=Role.OFFICE,
        display_name="Office Staff",
        base_capabilities=CapabilitySet(
            view=True, edit=True, view_history=True, upload_photos=True, view_financials=True
        ),
        can_create_jobs=True,
        scoped_to_assignment=False,
    ),
    Role.TEAM_LEAD: RoleDefinition(
        role=Role.TEAM_LEAD,
        display_name="Team Lead",
        base_capabilities=_SCOPED_EDITOR,
        can_create_jobs=True,
        scoped_to_assignment=True,
    ),
    Role.SALES_REP: RoleDefinition(
        role=Role.SALES_REP,
        display_name="Sales Rep",
        base_capabilities=_SCOPED_EDITOR,
        can_create_jobs=True,
        scoped_to_assignment=True,
    ),
    Role.FIELD_CREW: RoleDefinition(
        role=Role.FIELD_CREW,
        display_name="Field Crew",
        base_capabilities=CapabilitySet(view=True, upload_photos=True),
        can_create_jobs=False,
        scoped_to_assignment=True,
    ),
}


def normalize_role(raw: str | Role | None) -> Role:
    """Map a stored role string onto the catalog; unknown roles get the most restrictive one."""

    if isinstance(raw, Role):
        return raw
    value = (raw or "").strip().lower()
    if value in _LEGACY_ROLES:
        return _LEGACY_ROLES[value]
    try:
        return Role(value)
    except ValueError:
        return Role.FIELD_CREW


def role_definition(raw: str | Role | None) -> RoleDefinition:
    return ROLE_CATALOG[normalize_role(raw)]


def role_display_name(raw: str | Role | None) -> str:
    return role_definition(raw).display_name
