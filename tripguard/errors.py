"""Domain errors raised by services and mapped to HTTP responses by callers."""

from __future__ import annotations


class DomainError(Exception):
    """An error with a machine-readable code and a human-readable message."""

    code = "INTERNAL_ERROR"
    status = 500

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


class BadRequestError(DomainError):
    """The request was malformed or failed validation."""

    code = "BAD_REQUEST"
    status = 400


class ForbiddenError(DomainError):
    """The actor is not allowed to perform the operation."""

    code = "FORBIDDEN"
    status = 403


class NotFoundError(DomainError):
    """The requested entity does not exist."""

    code = "NOT_FOUND"
    status = 404


class InternalError(DomainError):
    """An unexpected failure, usually wrapping a storage error."""

    code = "INTERNAL_ERROR"
    status = 500