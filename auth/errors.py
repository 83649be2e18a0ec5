"""
auth/errors.py -- Typed failures raised by the auth core.

Every AuthService operation either returns a value or raises one of these.
The core never chooses HTTP status codes; api/main.py maps each class to a
status in a single exception handler.

code is a stable machine-readable identifier, message is safe to show users.
"""

from __future__ import annotations


class AuthServiceError(Exception):
    """Base class for all auth core failures."""

    code = "auth_error"
    default_message = "Authentication service error."

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)


class ValidationError(AuthServiceError):
    """Missing or malformed input. No state was changed."""

    code = "validation_error"
    default_message = "Invalid input."


class ConflictError(AuthServiceError):
    """Uniqueness violation, e.g. the email is already registered."""

    code = "conflict"
    default_message = "Resource already exists."


class AuthError(AuthServiceError):
    """Bad credentials or unauthenticated access."""

    code = "unauthorized"
    default_message = "Authentication required."


class NotFoundError(AuthServiceError):
    code = "not_found"
    default_message = "Not found."


class InvalidCodeError(AuthServiceError):
    """Verification code missing, wrong, already used, or expired."""

    code = "invalid_code"
    default_message = "The code is invalid or has expired."


class DeliveryError(AuthServiceError):
    """The notifier could not hand the email to the mail server."""

    code = "delivery_failed"
    default_message = "The email could not be sent."
