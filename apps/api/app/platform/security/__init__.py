from app.platform.security.capabilities import FULL_CAPABILITIES, CapabilitySet, ScopeFilter, ScopeKind
from app.platform.security.context import Actor
from app.platform.security.errors import AuthorizationError, ForbiddenError
from app.platform.security.policies import (
    AccessPolicyEngine,
    access_policy_engine,
    actor_capabilities,
    can_create_jobs,
    resolve_capabilities,
)
from app.platform.security.repository import BaseRepository
from app.platform.security.rls import apply_scope_filter, require_actor_capability, require_capability
from app.platform.security.roles import ROLE_CATALOG, Role, normalize_role

__all__ = [
    "FULL_CAPABILITIES",
    "CapabilitySet",
    "ScopeFilter",
    "ScopeKind",
    "Actor",
    "AuthorizationError",
    "ForbiddenError",
    "AccessPolicyEngine",
    "access_policy_engine",
    "actor_capabilities",
    "can_create_jobs",
    "resolve_capabilities",
    "BaseRepository",
    "apply_scope_filter",
    "require_actor_capability",
    "require_capability",
    "ROLE_CATALOG",
    "Role",
    "normalize_role",
]
