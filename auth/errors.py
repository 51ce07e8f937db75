"""
auth/errors.py -- Typed failures raised by the auth layer.

The manager raises these; the HTTP layer (api/main.py) maps them to status
codes. Every error carries a machine-readable code and a message that is safe
to show to the caller. Database errors are NOT wrapped: SQLAlchemy and
requests exceptions propagate as-is and end up in the generic 500 handler.
"""

from __future__ import annotations


class AuthError(Exception):
    code = "auth_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(AuthError):
    """Missing or malformed input, rejected before any database access."""

    code = "validation_error"


class InvalidCredentials(AuthError):
    """Login failure.

    The message is identical for unknown email, wrong password and OAuth-only
    accounts so callers cannot tell which case occurred.
    """

    code = "invalid_credentials"

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(message)


class NotFoundError(AuthError):
    code = "not_found"


class InvariantViolation(AuthError):
    code = "invariant_violation"


class LastAdminError(InvariantViolation):
    code = "last_admin"

    def __init__(self, message: str = "Cannot demote the last admin user") -> None:
        super().__init__(message)


class ProviderError(AuthError):
    """GitHub API / OAuth failure. message carries the upstream text when available."""

    code = "provider_error"


class StorageError(AuthError):
    """Failure reported by the remote SQL backend (the embedded backend raises SQLAlchemy errors)."""

    code = "storage_error"
