"""Error taxonomy shared by the role resolver, role promoter and lifecycle cascader.

Callers must be able to tell these apart: a NotFoundError is raised before any
permission logic runs, so a missing resource never reveals whether access
would have been granted.
"""
from typing import Any, Optional


class TrackerError(Exception):
    """Base class for domain errors raised by tracker-core."""


class NotFoundError(TrackerError):
    """Raised when a resource, or a required ancestor in its chain, does not exist."""

    def __init__(self, kind: str, resource_id: Any, message: Optional[str] = None):
        super().__init__(message or f"{kind.capitalize()} not found: {resource_id}")
        self.kind = kind
        self.resource_id = resource_id


class PermissionDeniedError(TrackerError):
    """Raised when an authorization check returns false."""

    def __init__(
        self,
        user_id: Any,
        action: str,
        kind: str,
        resource_id: Any,
        message: Optional[str] = None,
    ):
        super().__init__(
            message or f"User {user_id} is not allowed to {action} {kind} {resource_id}"
        )
        self.user_id = user_id
        self.action = action
        self.kind = kind
        self.resource_id = resource_id


class PreconditionFailedError(TrackerError):
    """Raised when an entity is not in the state a transition requires.

    Examples: archiving an already archived task, unarchiving an active one,
    adding a membership that already exists.
    """

    def __init__(self, kind: str, resource_id: Any, message: str):
        super().__init__(message)
        self.kind = kind
        self.resource_id = resource_id


class InconsistentStateError(TrackerError):
    """Raised when stored data violates a structural invariant.

    This indicates a bug or out-of-band data corruption (for example a task
    whose process row no longer exists). It is fatal for the operation.
    """

    def __init__(self, kind: str, resource_id: Any, message: str):
        super().__init__(message)
        self.kind = kind
        self.resource_id = resource_id
