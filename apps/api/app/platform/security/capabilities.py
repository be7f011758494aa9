from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.pipeline.models import Job


@dataclass(frozen=True, slots=True)
class CapabilitySet:
    """Closed set of operations an actor holds on a job or collection."""

    view: bool = False
    edit: bool = False
    delete: bool = False
    view_history: bool = False
    manage_team: bool = False
    upload_photos: bool = False
    view_financials: bool = False

    @classmethod
    def empty(cls) -> CapabilitySet:
        return cls()

    @property
    def is_empty(self) -> bool:
        return not any(getattr(self, item.name) for item in fields(self))

    @property
    def scope_of_work_only(self) -> bool:
        return self.view and not self.edit and not self.view_financials

    def without_job_access(self) -> CapabilitySet:
        return replace(self, view=False, edit=False, delete=False, upload_photos=False, view_financials=False)

    def granted(self) -> list[str]:
        return [item.name for item in fields(self) if getattr(self, item.name)]


FULL_CAPABILITIES = CapabilitySet(
    view=True,
    edit=True,
    delete=True,
    view_history=True,
    manage_team=True,
    upload_photos=True,
    view_financials=True,
)


class ScopeKind(StrEnum):
    ALL = "all"
    ASSIGNED_TO = "assigned_to"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class ScopeFilter:
    """Collection-level predicate returned by the policy engine when no job is given."""

    kind: ScopeKind
    assignee_ids: frozenset[int] = frozenset()

    @classmethod
    def all(cls) -> ScopeFilter:
        return cls(kind=ScopeKind.ALL)

    @classmethod
    def nothing(cls) -> ScopeFilter:
        return cls(kind=ScopeKind.NONE)

    @classmethod
    def assigned_to(cls, user_ids: set[int] | frozenset[int]) -> ScopeFilter:
        if not user_ids:
            return cls.nothing()
        return cls(kind=ScopeKind.ASSIGNED_TO, assignee_ids=frozenset(user_ids))

    def matches(self, job: Job) -> bool:
        if self.kind == ScopeKind.ALL:
            return True
        if self.kind == ScopeKind.NONE:
            return False
        return job.assigned_to is not None and job.assigned_to in self.assignee_ids
