"""
core/errors.py -- Structured application errors and their HTTP status table.

Every failure that should reach a client as a specific status code is raised
as AppError with an explicit ErrorKind. The API layer translates the kind to
a status code through STATUS_BY_KIND and nothing else -- message text is for
humans only and never inspected to pick a status.

Layer rule: core/ is the kernel. No imports from api/, web/, auth/, audit/,
content/, or cache/.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    unauthenticated = "unauthenticated"
    insufficient_permission = "insufficient_permission"
    validation_error = "validation_error"
    not_found = "not_found"
    conflict = "conflict"
    internal_error = "internal_error"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.unauthenticated: 401,
    ErrorKind.insufficient_permission: 403,
    ErrorKind.validation_error: 400,
    ErrorKind.not_found: 404,
    ErrorKind.conflict: 409,
    ErrorKind.internal_error: 500,
}


class AppError(Exception):
    """An error with a kind tag that maps to exactly one HTTP status."""

    def __init__(self, kind: ErrorKind, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.detail = detail

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def __repr__(self) -> str:
        return f"AppError({self.kind.value!r}, {self.message!r})"


def unauthenticated(message: str = "Not authenticated.") -> AppError:
    return AppError(ErrorKind.unauthenticated, message)


def insufficient_permission(message: str) -> AppError:
    return AppError(ErrorKind.insufficient_permission, message)


def validation_error(message: str, detail: str | None = None) -> AppError:
    return AppError(ErrorKind.validation_error, message, detail)


def not_found(message: str) -> AppError:
    return AppError(ErrorKind.not_found, message)


def conflict(message: str) -> AppError:
    return AppError(ErrorKind.conflict, message)
