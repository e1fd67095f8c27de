"""
Typed application errors.

Each error carries the HTTP status it should be rendered with and a stable
machine-readable ``code``. The single handler in ``plantstore.main`` turns
them into ``{"message": ..., "code": ...}`` responses.
"""


class AppError(Exception):
    """Base class for all errors rendered to API clients."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        super().__init__(message)


class AuthenticationError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class AccountLockedError(AppError):
    """Temporary, time-bound lockout; not a credential problem."""

    status_code = 423
    code = "ACCOUNT_LOCKED"


class AuthorizationError(AppError):
    status_code = 403
    code = "FORBIDDEN"


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 400
    code = "DUPLICATE"

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class RateLimitExceeded(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
