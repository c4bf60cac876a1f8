"""Domain errors raised by the services.

Services never raise HTTP exceptions; the API layer maps each error kind to a
status code (see ``planora.api.errors``).
"""

from enum import Enum


class ErrorCode(Enum):
    """Programmatic error kinds surfaced by the engine."""

    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    CONFLICT = "CONFLICT"
    FORBIDDEN = "FORBIDDEN"


class DomainError(Exception):
    """Base domain error with a code and a user-safe message."""

    code: ErrorCode = ErrorCode.INVALID_STATE
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class NotFoundError(DomainError):
    """A referenced event or reservation does not exist."""

    code = ErrorCode.NOT_FOUND
    status_code = 404


class InvalidStateError(DomainError):
    """Operation not permitted for the current status or time."""

    code = ErrorCode.INVALID_STATE
    status_code = 400


class ConflictError(DomainError):
    """Capacity exhausted or a duplicate active reservation."""

    code = ErrorCode.CONFLICT
    status_code = 409


class ForbiddenError(DomainError):
    """Acting principal is neither the owner nor an admin."""

    code = ErrorCode.FORBIDDEN
    status_code = 403
