"""
Domain errors raised by the service layer.

Each error carries an HTTP status and a stable machine-readable code so the
exception handlers in ``main.create_app`` can turn them into the same
``{"code", "message"}`` body the 503 handler uses. Routes never catch these.
"""
from __future__ import annotations


class ServiceError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


class UnauthorizedError(ServiceError):
    """Caller identity is missing or does not match the target resource."""

    status_code = 401
    code = "NOT_AUTHENTICATED"


class ForbiddenError(UnauthorizedError):
    """Caller is authenticated but acts outside their own role or record."""

    status_code = 403
    code = "NOT_AUTHORIZED"


class NotFoundError(ServiceError):
    """Requested record does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class ValidationFailedError(ServiceError):
    """Input is malformed (non-boolean status, bad day, negative delta)."""

    status_code = 422
    code = "VALIDATION_FAILED"


class ConflictError(ServiceError):
    """Request conflicts with the current state of the record."""

    status_code = 409
    code = "CONFLICT"


class StorageUnavailableError(ServiceError):
    """Underlying persistence failed; nothing was committed."""

    status_code = 503
    code = "DATABASE_UNAVAILABLE"
