from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.platform.security.capabilities import CapabilitySet, ScopeFilter
from app.platform.security.context import Actor
from app.platform.security.roles import ROLE_CATALOG, Role, normalize_role
from app.platform.security.team import TeamHierarchyResolver, team_hierarchy_resolver

if TYPE_CHECKING:
    from app.pipeline.models import Job


def resolve_capabilities(
    actor: Actor,
    job: Job | None,
    team_member_ids: frozenset[int] = frozenset(),
) -> CapabilitySet | ScopeFilter:
    """Single entry point for job authorization.

    With a job, returns the actor's capability set on it. Without one, returns the
    scope filter the query layer applies to job collections. Never raises: an
    unknown role resolves to the most restrictive catalog entry.
    """

    if job is None:
        return resolve_scope_filter(actor, team_member_ids)
    return resolve_job_capabilities(actor, job, team_member_ids)


def resolve_job_capabilities(
    actor: Actor,
    job: Job,
    team_member_ids: frozenset[int] = frozenset(),
) -> CapabilitySet:
    if not actor.is_active:
        return CapabilitySet.empty()

    definition = ROLE_CATALOG[normalize_role(actor.role)]
    if not definition.scoped_to_assignment:
        return definition.base_capabilities

    if _is_in_assignment_scope(actor, job.assigned_to, team_member_ids):
        return definition.base_capabilities
    return definition.base_capabilities.without_job_access()


def resolve_scope_filter(actor: Actor, team_member_ids: frozenset[int] = frozenset()) -> ScopeFilter:
    if not actor.is_active:
        return ScopeFilter.nothing()

    role = normalize_role(actor.role)
    definition = ROLE_CATALOG[role]
    if not definition.scoped_to_assignment:
        return ScopeFilter.all()
    if role == Role.TEAM_LEAD:
        return ScopeFilter.assigned_to(set(team_member_ids) | {actor.user_id})
    return ScopeFilter.assigned_to({actor.user_id})


def actor_capabilities(actor: Actor) -> CapabilitySet:
    """Job-independent capabilities, used for team management and history deletion."""

    if not actor.is_active:
        return CapabilitySet.empty()
    definition = ROLE_CATALOG[normalize_role(actor.role)]
    if definition.scoped_to_assignment:
        return definition.base_capabilities.without_job_access()
    return definition.base_capabilities


def can_create_jobs(actor: Actor) -> bool:
    return actor.is_active and ROLE_CATALOG[normalize_role(actor.role)].can_create_jobs


def _is_in_assignment_scope(actor: Actor, assigned_to: int | None, team_member_ids: frozenset[int]) -> bool:
    if assigned_to is None:
        return False
    if assigned_to == actor.user_id:
        return True
    return normalize_role(actor.role) == Role.TEAM_LEAD and assigned_to in team_member_ids


@dataclass(slots=True)
class AccessPolicyEngine:
    """Gathers the team snapshot from the session and evaluates the pure policy."""

    team_resolver: TeamHierarchyResolver = field(default_factory=lambda: team_hierarchy_resolver)

    def team_snapshot(self, session: Session, actor: Actor) -> frozenset[int]:
        if not actor.is_active or normalize_role(actor.role) != Role.TEAM_LEAD:
            return frozenset()
        return self.team_resolver.team_member_ids(session, actor.user_id)

    def capabilities_for(self, session: Session, actor: Actor, job: Job) -> CapabilitySet:
        return resolve_job_capabilities(actor, job, self.team_snapshot(session, actor))

    def scope_for(self, session: Session, actor: Actor) -> ScopeFilter:
        return resolve_scope_filter(actor, self.team_snapshot(session, actor))


access_policy_engine = AccessPolicyEngine()
