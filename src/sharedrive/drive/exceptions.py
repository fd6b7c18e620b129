"""Custom exception hierarchy for the sharedrive core.

Every error carries a ``kind`` (the taxonomy name surfaced to clients) and
the HTTP-like ``status_code`` the transport layer should answer with.
"""


class DriveError(Exception):
    """Base exception for all sharedrive errors."""

    kind = "Internal"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class UnauthenticatedError(DriveError):
    """Raised when an operation is attempted without a valid principal."""

    kind = "Unauthenticated"
    status_code = 401


class ForbiddenError(DriveError):
    """Raised when the principal lacks the required permission rank."""

    kind = "Forbidden"
    status_code = 403


class NotFoundError(DriveError):
    """Raised when a resource, user, version, or blob does not exist."""

    kind = "NotFound"
    status_code = 404


class InvalidInputError(DriveError):
    """Raised on malformed actions, missing fields, or invalid enum values."""

    kind = "InvalidInput"
    status_code = 400


class ConflictError(DriveError):
    """Raised when a name collides with a sibling in the same parent."""

    kind = "Conflict"
    status_code = 409


class InternalError(DriveError):
    """Raised on unexpected store or blob failures."""
