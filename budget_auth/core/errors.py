# budget_auth/core/errors.py
from __future__ import annotations

from typing import Any, Optional


class AuthServiceError(Exception):
    """Base class for domain errors rendered as JSON by the app's exception handlers."""

    status_code: int = 500
    error_code: str = "server_error"
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Any = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.details = details
        if error_code is not None:
            self.error_code = error_code


class ValidationFailed(AuthServiceError):
    status_code = 400
    error_code = "validation_error"
    default_message = "Validation failed"


class UnsupportedGrantType(ValidationFailed):
    error_code = "unsupported_grant_type"
    default_message = "Unsupported grant_type"


class AuthenticationFailed(AuthServiceError):
    status_code = 401
    error_code = "unauthorized"
    default_message = "Authentication required"


class TokenExpired(AuthenticationFailed):
    """Time-based failure; the caller may retry with a refresh token."""

    error_code = "token_expired"
    default_message = "Token expired"


class TokenRevoked(AuthenticationFailed):
    error_code = "token_revoked"
    default_message = "Token has been revoked"


class TokenMalformed(AuthenticationFailed):
    error_code = "invalid_token"
    default_message = "Invalid token"


class InvalidClient(AuthenticationFailed):
    error_code = "invalid_client"
    default_message = "Invalid client credentials"


class InvalidGrant(AuthenticationFailed):
    error_code = "invalid_grant"
    default_message = "Invalid or expired authorization code"


class LoginRequired(AuthenticationFailed):
    """Browser callers without an identity; rendered as a redirect to the login page."""

    error_code = "login_required"

    def __init__(self, redirect_to: str, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.redirect_to = redirect_to


class AuthorizationDenied(AuthServiceError):
    status_code = 403
    error_code = "forbidden"
    default_message = "Insufficient permissions"


class NotFound(AuthServiceError):
    status_code = 404
    error_code = "not_found"
    default_message = "Resource not found"


class Conflict(AuthServiceError):
    status_code = 409
    error_code = "conflict"
    default_message = "Resource conflict"


class InternalFailure(AuthServiceError):
    status_code = 500
    error_code = "server_error"
    default_message = "Internal server error"


class RateLimited(AuthServiceError):
    status_code = 429
    error_code = "rate_limited"
    default_message = "Too many login attempts. Try again later."

    def __init__(self, message: Optional[str] = None, *, retry_after: Optional[int] = None) -> None:
        super().__init__(message, details={"retry_after": retry_after} if retry_after else None)
        self.retry_after = retry_after
