from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from app.platform.security.capabilities import CapabilitySet, ScopeFilter
from app.platform.security.context import Actor
from app.platform.security.policies import AccessPolicyEngine, access_policy_engine
from app.platform.security.rls import apply_scope_filter, require_capability


class BaseRepository:
    resource = ""

    def __init__(self, policy_engine: AccessPolicyEngine | None = None) -> None:
        self.policy_engine = policy_engine or access_policy_engine

    def assignee_column(self) -> Any:
        raise NotImplementedError

    def scope_for(self, session: Session, actor: Actor) -> ScopeFilter:
        return self.policy_engine.scope_for(session, actor)

    def apply_scope_query(self, session: Session, query: Select[Any], actor: Actor) -> Select[Any]:
        return apply_scope_filter(query, self.scope_for(session, actor), self.assignee_column())

    def capabilities_for(self, session: Session, actor: Actor, record: Any) -> CapabilitySet:
        return self.policy_engine.capabilities_for(session, actor, record)

    def enforce(self, session: Session, actor: Actor, record: Any, capability: str) -> CapabilitySet:
        capabilities = self.capabilities_for(session, actor, record)
        require_capability(
            capabilities,
            capability,
            resource=self.resource,
            resource_id=getattr(record, "id", None),
            actor=actor,
        )
        return capabilities
