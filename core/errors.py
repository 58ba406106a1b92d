"""
core/errors.py -- Application error taxonomy.

Every failure a route can surface to a client is one of these classes. Each
carries a stable machine-readable code, a human message, and the HTTP status
it maps to. api/main.py registers a single exception handler for AppError that
renders the standard envelope:

    {"success": false, "error": {"code": "...", "message": "..."}}

Stores, token helpers and RBAC functions raise these directly; route handlers
let them propagate. Nothing is retried -- an auth or permission failure is
terminal for the request.

Layer rule: core/ is the kernel. No imports from api/, auth/, or content/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        message:     Human-readable error message, safe to show to clients.
        code:        Stable, machine-readable error code.
        status_code: HTTP status the API layer responds with.
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, code: str | None = None, status_code: int | None = None) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# 400
# ---------------------------------------------------------------------------


class BadRequestError(AppError):
    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"


class ValidationError(AppError):
    """Raised when input fails a business-level validation rule."""

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


# ---------------------------------------------------------------------------
# 401
# ---------------------------------------------------------------------------


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class InvalidCredentialsError(UnauthorizedError):
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class TokenExpiredError(UnauthorizedError):
    code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class InvalidTokenError(UnauthorizedError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token"


class TokenRevokedError(UnauthorizedError):
    code = "TOKEN_REVOKED"
    default_message = "Token has been revoked"


# ---------------------------------------------------------------------------
# 403 / 404 / 409 / 429
# ---------------------------------------------------------------------------


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class PermissionDeniedError(ForbiddenError):
    code = "PERMISSION_DENIED"
    default_message = "Insufficient permissions"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"

    def __init__(self, resource: str = "Resource", code: str | None = None) -> None:
        super().__init__(f"{resource} not found", code=code)


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict"


class UserExistsError(ConflictError):
    code = "USER_EXISTS"

    def __init__(self, field: str) -> None:
        super().__init__(f"User with this {field} already exists")


class TooManyRequestsError(AppError):
    status_code = 429
    code = "TOO_MANY_REQUESTS"
    default_message = "Too many requests"
