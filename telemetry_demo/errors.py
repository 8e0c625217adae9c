from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    APP = "AppError"
    BUSINESS = "BusinessError"
    AUTH = "AuthError"
    FORBIDDEN = "ForbiddenError"
    NOT_FOUND = "NotFoundError"


class AppError(Exception):
    """Operational error with an explicit kind and HTTP status.

    The kind is fixed at construction so log records never depend on the
    runtime class name.
    """

    kind: ErrorKind = ErrorKind.APP
    default_status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None, error_code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code if status_code is not None else self.default_status_code
        self.error_code = error_code
        self.is_operational = True


class BusinessError(AppError):
    kind = ErrorKind.BUSINESS
    default_status_code = 400


class AuthError(AppError):
    kind = ErrorKind.AUTH
    default_status_code = 401


class ForbiddenError(AppError):
    kind = ErrorKind.FORBIDDEN
    default_status_code = 403


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    default_status_code = 404

    def __init__(self, resource: str = "Resource", error_code: str | None = None) -> None:
        super().__init__(f"{resource} not found", error_code=error_code)


def error_kind(error: BaseException) -> str:
    if isinstance(error, AppError):
        return error.kind.value
    return type(error).__name__
