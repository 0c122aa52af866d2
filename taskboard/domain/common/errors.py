from __future__ import annotations

import asyncio
from typing import Any, Optional

from taskboard.constants import (
    ERROR_CHECK_VIOLATION,
    ERROR_FOREIGN_KEY_VIOLATION,
    ERROR_JWT_EXPIRED,
    ERROR_NO_ROWS,
    ERROR_NOT_NULL_VIOLATION,
    ERROR_PERMISSION_DENIED,
    ERROR_UNIQUE_VIOLATION,
)

CONSTRAINT_DUPLICATE = "duplicate"
CONSTRAINT_DANGLING_REFERENCE = "dangling_reference"
CONSTRAINT_MISSING_FIELD = "missing_field"


class DomainError(Exception):
    """Base for every error the board core hands back to its callers."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Input rejected before any remote call."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class AuthorizationError(DomainError):
    pass


class ConstraintError(DomainError):
    def __init__(self, message: str, category: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.category = category
        self.details = details


class NotFoundError(DomainError):
    pass


class ConflictError(DomainError):
    pass


class TransportError(DomainError):
    pass


class PartialFailure(DomainError):
    """
    First step of a multi-step write committed, a later one did not.

    `cause` is the error of the failed auxiliary step.
    """

    def __init__(self, message: str, cause: Optional[DomainError] = None) -> None:
        super().__init__(message)
        self.cause = cause


class RemoteStoreError(Exception):
    """Raised by RemoteStore adapters. `code` is stable across adapters."""

    def __init__(self, code: str, message: str, details: Optional[str] = None) -> None:
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
        self.details = details


# Everything a remote call may raise that the core turns into a typed result.
REMOTE_FAILURES = (RemoteStoreError, OSError, asyncio.TimeoutError)


def map_remote_error(exc: BaseException, entity: str = "record") -> DomainError:
    """Translate an adapter/transport failure into the domain taxonomy."""
    if isinstance(exc, DomainError):
        return exc
    if not isinstance(exc, RemoteStoreError):
        return TransportError(f"Could not reach the remote store: {exc}")

    code = exc.code
    details: Any = exc.details
    if code == ERROR_UNIQUE_VIOLATION:
        if entity == "task":
            message = "A task with this title already exists"
        else:
            message = f"This {entity} already exists"
        return ConstraintError(message, CONSTRAINT_DUPLICATE, details)
    if code == ERROR_FOREIGN_KEY_VIOLATION:
        return ConstraintError(
            "Invalid reference (user, task or subtask not found)",
            CONSTRAINT_DANGLING_REFERENCE,
            details or "Check that all referenced IDs exist",
        )
    if code in (ERROR_NOT_NULL_VIOLATION, ERROR_CHECK_VIOLATION):
        return ConstraintError(
            "Missing required field",
            CONSTRAINT_MISSING_FIELD,
            details or "Check that all required fields are provided",
        )
    if code in (ERROR_PERMISSION_DENIED, ERROR_JWT_EXPIRED):
        return AuthorizationError(f"Permission denied: you may not modify this {entity}")
    if code == ERROR_NO_ROWS:
        return NotFoundError(f"The {entity} no longer exists")
    return TransportError(exc.message or f"Remote store failed with code {code}")
