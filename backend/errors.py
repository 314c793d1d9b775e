from __future__ import annotations

from typing import Any

VALIDATION_ERROR = "VALIDATION_ERROR"
NOT_FOUND = "NOT_FOUND"
CONFLICT = "CONFLICT"
UNAUTHORIZED = "UNAUTHORIZED"
FORBIDDEN = "FORBIDDEN"
INTERNAL_ERROR = "INTERNAL_ERROR"

STATUS_BY_CODE: dict[str, int] = {
    VALIDATION_ERROR: 400,
    UNAUTHORIZED: 401,
    FORBIDDEN: 403,
    NOT_FOUND: 404,
    CONFLICT: 409,
}


class DomainError(Exception):
    """Base class for errors raised by operations and mapped to HTTP by main."""

    code = INTERNAL_ERROR

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return http_status(self.code)


class ValidationError(DomainError):
    code = VALIDATION_ERROR


class NotFoundError(DomainError):
    code = NOT_FOUND


class DuplicateError(DomainError):
    code = CONFLICT


class UnauthorizedError(DomainError):
    code = UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized.", details: Any = None) -> None:
        super().__init__(message, details)


class ForbiddenError(DomainError):
    code = FORBIDDEN

    def __init__(self, message: str = "Forbidden.", details: Any = None) -> None:
        super().__init__(message, details)


def http_status(code: str) -> int:
    return STATUS_BY_CODE.get(code, 500)
