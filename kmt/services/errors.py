"""
Errors raised by the request services.

Every one of these is surfaced to the caller as-is; the services roll back
their session before raising, so a failed operation never leaves a partial
change behind.
"""
from typing import Optional


class KmtError(Exception):
    """Base error with a user-facing message."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(KmtError):
    """Malformed input from the caller."""


class NotFoundError(KmtError):
    """The request does not exist, is soft-deleted, or is not visible to the caller."""


class ForbiddenError(KmtError):
    """The caller's role or area does not allow the action."""


class InvalidTransitionError(KmtError):
    """The action has no edge out of the request's current status."""

    def __init__(self, current_status: str, action: str, message: Optional[str] = None) -> None:
        self.current_status = current_status
        self.action = action
        super().__init__(
            message or f"Cannot {action} a request that is {current_status}"
        )


class AlreadyDeletedError(KmtError):
    """Soft delete of a request that is already soft-deleted."""


class NotDeletedError(KmtError):
    """Recover or purge of a request that is not soft-deleted."""


class ConflictError(KmtError):
    """
    Another mutation of the same request won the race.

    Nothing was committed, so the caller may simply retry.
    """
    retryable = True
