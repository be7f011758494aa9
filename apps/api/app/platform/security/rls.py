from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import false
from sqlalchemy.sql import Select

from app.core.errors import NotFoundError
from app.metrics import observe_access_denied
from app.platform.security.capabilities import CapabilitySet, ScopeFilter, ScopeKind
from app.platform.security.context import Actor
from app.platform.security.errors import ForbiddenError


logger = logging.getLogger("app.security")


def apply_scope_filter(query: Select[Any], scope: ScopeFilter, assignee_column: Any) -> Select[Any]:
    """Apply a collection scope filter to a query over a model with an assignee column."""

    if scope.kind == ScopeKind.ALL:
        return query
    if scope.kind == ScopeKind.NONE:
        return query.where(false())
    return query.where(assignee_column.in_(sorted(scope.assignee_ids)))


def require_capability(
    capabilities: CapabilitySet,
    capability: str,
    *,
    resource: str,
    resource_id: object,
    actor: Actor,
) -> None:
    """Enforce a capability on a loaded record.

    An actor without view on the record gets NotFound, so inaccessible records look
    the same as missing ones. An actor that can view but lacks the capability gets
    Forbidden.
    """

    if not capabilities.view:
        emit_denied(resource=resource, capability="view", resource_id=resource_id, actor=actor)
        raise NotFoundError(resource, resource_id)
    if not getattr(capabilities, capability):
        emit_denied(resource=resource, capability=capability, resource_id=resource_id, actor=actor)
        raise ForbiddenError(capability, resource)


def require_actor_capability(capabilities: CapabilitySet, capability: str, *, resource: str, actor: Actor) -> None:
    if getattr(capabilities, capability):
        return
    emit_denied(resource=resource, capability=capability, resource_id=None, actor=actor)
    raise ForbiddenError(capability, resource)


def emit_denied(*, resource: str, capability: str, resource_id: object, actor: Actor) -> None:
    observe_access_denied(resource=resource, capability=capability)
    logger.info(
        "access.denied",
        extra={
            "resource": resource,
            "capability": capability,
            "resource_id": resource_id,
            "actor_id": actor.user_id,
            "role": str(actor.role),
        },
    )
