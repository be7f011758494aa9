from __future__ import annotations


class AuthorizationError(Exception):
    """Base authorization error for capability enforcement failures."""


class ForbiddenError(AuthorizationError):
    """Raised when the actor can see a resource but lacks the capability for the operation."""

    def __init__(self, capability: str, resource: str) -> None:
        self.capability = capability
        self.resource = resource
        super().__init__(f"Missing capability '{capability}' for resource '{resource}'")
