"""Domain error taxonomy.

Services raise the most specific subclass; ``safecircle.main`` renders
them into the response envelope.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any


class SafeCircleError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500
    code = "server_error"

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors

    def envelope(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "message": self.message, "code": self.code}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(SafeCircleError):
    status_code = 400
    code = "validation_error"


class AuthenticationError(SafeCircleError):
    status_code = 401
    code = "authentication_error"


class InactiveAccountError(AuthenticationError):
    """Credential is valid but the account has been deactivated."""

    code = "account_inactive"


class AuthorizationError(SafeCircleError):
    status_code = 403
    code = "authorization_error"


class NotFoundError(SafeCircleError):
    status_code = 404
    code = "not_found"


class InvalidTransitionError(SafeCircleError):
    """A lifecycle guard rejected the requested state change."""

    status_code = 400
    code = "invalid_transition"


class CapacityError(SafeCircleError):
    status_code = 400
    code = "capacity_exceeded"


class LastAdminError(SafeCircleError):
    status_code = 400
    code = "last_admin"


class DuplicateInviteError(SafeCircleError):
    status_code = 400
    code = "duplicate_invite"


class AlreadyMemberError(SafeCircleError):
    status_code = 400
    code = "already_member"


class ExpiredError(SafeCircleError):
    status_code = 400
    code = "expired"


class LockedAccountError(SafeCircleError):
    status_code = 403
    code = "account_locked"

    def __init__(self, message: str, lock_until: datetime) -> None:
        super().__init__(message)
        self.lock_until = lock_until

    def envelope(self) -> dict[str, Any]:
        body = super().envelope()
        body["lockUntil"] = self.lock_until.isoformat()
        return body


class ServerError(SafeCircleError):
    status_code = 500
    code = "server_error"
