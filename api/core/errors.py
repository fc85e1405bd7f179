"""
Typed, recoverable outcomes raised by the feature services.

`main.py` renders every `DomainError` as `{"detail": ..., "code": ...}` with
the class' HTTP status. None of these are retried by the API.
"""

from __future__ import annotations

from typing import Any


class DomainError(RuntimeError):
    status_code = 500
    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class BadRequestError(DomainError):
    status_code = 400
    code = "BAD_REQUEST"


class ForbiddenError(DomainError):
    status_code = 403
    code = "FORBIDDEN"


class LockedError(ForbiddenError):
    """Mutation attempted on a locked bulletin (or an item of a locked date)."""


class NotFoundError(DomainError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(DomainError):
    status_code = 409
    code = "CONFLICT"


class PreconditionFailedError(DomainError):
    status_code = 412
    code = "PRECONDITION_FAILED"


def not_found(resource: str) -> NotFoundError:
    return NotFoundError(f"{resource} not found.")


def bulletin_locked(action: str = "update") -> LockedError:
    return LockedError(f"Cannot {action} locked bulletin.")


def concurrent_change(resource: str) -> ConflictError:
    return ConflictError(f"{resource} was changed by another request. Reload and try again.")
