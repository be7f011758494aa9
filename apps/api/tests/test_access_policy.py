from __future__ import annotations

import pytest

from app.pipeline.models import Job, User
from app.platform.security.capabilities import FULL_CAPABILITIES, CapabilitySet, ScopeFilter, ScopeKind
from app.platform.security.context import Actor
from app.platform.security.policies import (
    actor_capabilities,
    can_create_jobs,
    resolve_capabilities,
    resolve_job_capabilities,
    resolve_scope_filter,
)
from app.platform.security.roles import Role, normalize_role, role_display_name


TEAM = frozenset({11, 12})


def _job(assigned_to: int | None, job_id: int = 1) -> Job:
    return Job(id=job_id, assigned_to=assigned_to, customer_name="Harper Residence", status="lead")


@pytest.mark.parametrize("role", list(Role))
def test_inactive_actor_has_no_capabilities_for_any_job(role: Role) -> None:
    actor = Actor(user_id=10, role=role, is_active=False)

    for assigned_to in (None, 10, 11, 99):
        capabilities = resolve_capabilities(actor, _job(assigned_to), TEAM)
        assert capabilities == CapabilitySet.empty()
        assert capabilities.is_empty

    scope = resolve_capabilities(actor, None, TEAM)
    assert scope == ScopeFilter.nothing()
    assert actor_capabilities(actor).is_empty
    assert can_create_jobs(actor) is False


def test_owner_holds_full_capability_set() -> None:
    actor = Actor(user_id=1, role=Role.OWNER)

    assert resolve_job_capabilities(actor, _job(None)) == FULL_CAPABILITIES
    assert resolve_job_capabilities(actor, _job(42)) == FULL_CAPABILITIES
    assert resolve_scope_filter(actor).kind == ScopeKind.ALL


@pytest.mark.parametrize("role", [Role.ADMIN, Role.OFFICE])
def test_office_roles_view_edit_and_read_history_without_delete(role: Role) -> None:
    capabilities = resolve_job_capabilities(Actor(user_id=2, role=role), _job(42))

    assert capabilities.view
    assert capabilities.edit
    assert capabilities.view_history
    assert capabilities.view_financials
    assert not capabilities.delete
    assert not capabilities.manage_team
    assert resolve_scope_filter(Actor(user_id=2, role=role)).kind == ScopeKind.ALL


@pytest.mark.parametrize("assigned_to", [None, 10, 11, 12, 20, 21])
def test_team_lead_edits_exactly_the_jobs_of_the_team_and_self(assigned_to: int | None) -> None:
    actor = Actor(user_id=10, role=Role.TEAM_LEAD)

    capabilities = resolve_job_capabilities(actor, _job(assigned_to), TEAM)

    in_scope = assigned_to in TEAM | {10}
    assert capabilities.edit is in_scope
    assert capabilities.view is in_scope
    assert not capabilities.view_history
    assert not capabilities.delete
    assert not capabilities.manage_team


def test_team_lead_scope_filter_is_team_plus_self() -> None:
    scope = resolve_scope_filter(Actor(user_id=10, role=Role.TEAM_LEAD), TEAM)

    assert scope.kind == ScopeKind.ASSIGNED_TO
    assert scope.assignee_ids == frozenset({10, 11, 12})
    assert scope.matches(_job(11))
    assert not scope.matches(_job(20))
    assert not scope.matches(_job(None))


def test_sales_rep_only_reaches_own_jobs() -> None:
    actor = Actor(user_id=20, role=Role.SALES_REP)

    own = resolve_job_capabilities(actor, _job(20), TEAM)
    other = resolve_job_capabilities(actor, _job(21), TEAM)

    assert own.view and own.edit and own.view_financials
    assert not own.view_history and not own.delete
    assert not other.view and not other.edit
    assert resolve_scope_filter(actor, TEAM).assignee_ids == frozenset({20})


def test_field_crew_gets_scope_of_work_projection_and_photo_upload() -> None:
    actor = Actor(user_id=30, role=Role.FIELD_CREW)

    shared = resolve_job_capabilities(actor, _job(30))
    not_shared = resolve_job_capabilities(actor, _job(31))

    assert shared.view
    assert shared.upload_photos
    assert shared.scope_of_work_only
    assert not shared.edit
    assert not shared.view_financials
    assert not shared.view_history
    assert not_shared.is_empty
    assert can_create_jobs(actor) is False


def test_unknown_role_resolves_to_field_crew() -> None:
    assert normalize_role("regional_director") == Role.FIELD_CREW
    assert normalize_role(None) == Role.FIELD_CREW
    assert normalize_role(" Owner ") == Role.OWNER
    assert normalize_role("project_manager") == Role.SALES_REP

    actor = Actor.from_user(User(id=40, name="Unknown", role="regional_director", is_active=True))
    assert actor.role == Role.FIELD_CREW
    capabilities = resolve_job_capabilities(actor, _job(99))
    assert capabilities.is_empty
    assert resolve_job_capabilities(actor, _job(40)) == resolve_job_capabilities(
        Actor(user_id=40, role=Role.FIELD_CREW), _job(40)
    )


def test_job_independent_capabilities_follow_the_role() -> None:
    assert actor_capabilities(Actor(user_id=1, role=Role.OWNER)).manage_team
    assert actor_capabilities(Actor(user_id=1, role=Role.OWNER)).delete
    assert not actor_capabilities(Actor(user_id=2, role=Role.ADMIN)).manage_team
    assert not actor_capabilities(Actor(user_id=3, role=Role.SALES_REP)).view
    assert role_display_name(Role.OFFICE) == "Office Staff"
    assert role_display_name("something_else") == "Field Crew"
