"""Typed failures raised by the auth core.

Each class maps to exactly one HTTP status; the API layer renders them through
a single exception handler, so routes never build error responses by hand.
"""
from typing import Dict, List, Optional

from fastapi import status

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


class AuthError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "bad_request"
    default_message: str = "Bad request"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        errors: Optional[List] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.errors = errors or []
        self.headers = headers
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    default_message = "Validation failed"


class WeakPassword(ValidationError):
    code = "weak_password"
    default_message = "Password does not meet security requirements"


class InvalidToken(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_token"
    default_message = "Invalid or expired token"


class InvalidCredentials(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "invalid_credentials"
    default_message = INVALID_CREDENTIALS_MESSAGE


class NotAuthenticated(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "not_authenticated"
    default_message = "Could not validate credentials"

    def __init__(self, message: Optional[str] = None, **kwargs) -> None:
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class EmailNotVerified(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "email_not_verified"
    default_message = "Email not verified"


class Forbidden(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "Not enough permissions"


class NotFound(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "User not found"


class DuplicateEmail(AuthError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_email"
    default_message = "User with this email already exists"


class AccountLocked(AuthError):
    status_code = status.HTTP_423_LOCKED
    code = "account_locked"
    default_message = (
        "Account is temporarily locked due to too many failed login attempts. "
        "Please try again later."
    )


class CorruptCredential(AuthError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "server_error"
    default_message = "Internal server error"


__all__ = [
    "INVALID_CREDENTIALS_MESSAGE",
    "AuthError",
    "ValidationError",
    "WeakPassword",
    "InvalidToken",
    "InvalidCredentials",
    "NotAuthenticated",
    "EmailNotVerified",
    "Forbidden",
    "NotFound",
    "DuplicateEmail",
    "AccountLocked",
    "CorruptCredential",
]
