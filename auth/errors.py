"""
auth/errors.py -- Error taxonomy for the authentication workflow.

Every workflow failure is an AuthError subclass carrying the HTTP status it
maps to, a stable machine-readable code, and a short user-facing message.
api/main.py has a single exception handler that renders any AuthError into
the standard ErrorResponse envelope, so route handlers never build error
responses by hand.

Security-sensitive errors (InvalidCredentials, Unauthorized) have fixed
messages. Callers may not pass a custom message that would reveal whether an
email exists or which role a user holds.

Layer rule: no imports from api/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for workflow errors that map to an HTTP response."""

    status_code: int = 400
    code: str = "error"
    default_message: str = "Request failed."

    def __init__(self, message: str | None = None, *, field: str | None = None) -> None:
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)


class ValidationError(AuthError):
    """Missing or malformed input."""

    status_code = 400
    code = "validation_error"
    default_message = "Invalid request."


class WeakPassword(AuthError):
    """The password policy rejected a candidate password."""

    status_code = 400
    code = "weak_password"
    default_message = "Password does not meet the password policy."


class DuplicateEmail(AuthError):
    status_code = 409
    code = "duplicate_email"
    default_message = "A user with that email already exists."


class InvalidCredentials(AuthError):
    """Wrong email or wrong password -- deliberately indistinguishable."""

    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid email or password."

    def __init__(self) -> None:
        super().__init__()


class Unauthorized(AuthError):
    """No valid session, or a session without the required role.

    The response is identical for both causes. Only the server log says which.
    """

    status_code = 403
    code = "unauthorized"
    default_message = "You are not authorized to perform this action."

    def __init__(self) -> None:
        super().__init__()


class TemporaryPasswordExpired(AuthError):
    status_code = 403
    code = "temporary_password_expired"
    default_message = "Temporary password has expired. Please contact your administrator."


class NotFound(AuthError):
    status_code = 404
    code = "not_found"
    default_message = "User not found."


class StoreFailure(AuthError):
    """Unexpected persistence error. The real cause is logged, never returned."""

    status_code = 500
    code = "store_failure"
    default_message = "An unexpected error occurred."
