from __future__ import annotations

from dataclasses import dataclass


class GovernanceError(Exception):
    """Base error for pipeline governance operations."""


class NotFoundError(GovernanceError):
    def __init__(self, resource: str, identifier: object) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found")


class AlreadySubmittedError(GovernanceError):
    """Raised when a job already has an active commission request."""

    def __init__(self, job_id: int) -> None:
        self.job_id = job_id
        super().__init__("A commission request has already been submitted for this job")


class ValidationError(GovernanceError):
    pass


class InvalidStateError(GovernanceError):
    pass


@dataclass(frozen=True, slots=True)
class DataIntegrityWarning:
    """Reported, never raised: inconsistent data that must not block other work."""

    job_id: int
    code: str
    message: str
