"""Service-layer error taxonomy.

Services raise these; the API layer turns them into the standard error
envelope with the carried status code. Callers can tell a request that
should be retried with different input (validation) from one that hit a
terminal state (conflict).
"""

from fastapi import status


class LedgerError(Exception):
    """Base exception for service layer errors."""

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailed(LedgerError):
    """Malformed input; rejected before any write."""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(LedgerError):
    """Entity absent or outside the caller's school."""

    code = "RESOURCE_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(LedgerError):
    """Request collides with existing state (duplicate, frozen, exhausted)."""

    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT
