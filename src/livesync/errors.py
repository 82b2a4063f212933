from __future__ import annotations


class FarmWatchError(Exception):
    """Base class for every error raised by the FarmWatch packages."""


class TransportError(FarmWatchError):
    """Backend or network is unreachable (or the change feed dropped)."""


class NotFoundError(FarmWatchError):
    """The requested row does not exist."""

    def __init__(self, collection: str, row_id: str) -> None:
        super().__init__(f"{collection} row {row_id!r} not found")
        self.collection = collection
        self.row_id = row_id


class ValidationError(FarmWatchError):
    """Caller-supplied data is malformed."""


class AuthorizationError(FarmWatchError):
    """Session is missing, invalid or expired, or lacks the required role."""


class ConflictError(ValidationError):
    """The write collides with existing data (duplicate unique value)."""
