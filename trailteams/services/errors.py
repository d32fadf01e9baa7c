"""
Structured error kinds raised by the team services.

Every error is a ValueError subclass so existing ``except ValueError``
handlers keep working; routes branch on ``kind`` to choose a status code.
"""

import enum


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    DUPLICATE_MEMBERSHIP = "duplicate_membership"
    UNAUTHORIZED = "unauthorized"
    PRECONDITION_MISSING = "precondition_missing"
    # Privileged path absent or failing; recovered locally, never raised
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_FAILURE = "upstream_failure"


class TeamServiceError(ValueError):
    """Base class: a machine-readable kind plus a displayable message."""

    kind: ErrorKind = ErrorKind.UPSTREAM_FAILURE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "kind": self.kind.value}


class NotFoundError(TeamServiceError):
    kind = ErrorKind.NOT_FOUND


class CapacityExceededError(TeamServiceError):
    kind = ErrorKind.CAPACITY_EXCEEDED


class DuplicateMembershipError(TeamServiceError):
    kind = ErrorKind.DUPLICATE_MEMBERSHIP


class UnauthorizedError(TeamServiceError):
    kind = ErrorKind.UNAUTHORIZED


class PreconditionMissingError(TeamServiceError):
    kind = ErrorKind.PRECONDITION_MISSING


class UpstreamFailureError(TeamServiceError):
    kind = ErrorKind.UPSTREAM_FAILURE


# HTTP status per kind, used by the route layer
HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CAPACITY_EXCEEDED: 409,
    ErrorKind.DUPLICATE_MEMBERSHIP: 409,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.PRECONDITION_MISSING: 422,
    ErrorKind.UPSTREAM_UNAVAILABLE: 503,
    ErrorKind.UPSTREAM_FAILURE: 502,
}
