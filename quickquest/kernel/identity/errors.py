"""
Error taxonomy for identity operations.

Every failure a caller can observe is one of these. Each carries the HTTP
status the API layer renders it with; messages are safe to show to clients.
"""

from typing import Any, Dict, Optional


class IdentityError(Exception):
    """Base exception for all identity errors."""

    status_code: int = 400
    default_message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class ValidationFailed(IdentityError, ValueError):
    """Malformed input, rejected before the repository is touched."""

    status_code = 422
    default_message = "Validation failed"


class Conflict(IdentityError):
    """A uniqueness constraint (email, username) would be violated."""

    status_code = 409
    default_message = "Account already exists"


class Unauthorized(IdentityError):
    """Bad credentials. Identical for every underlying cause."""

    status_code = 401
    default_message = "Invalid email or password"


class InvalidOrExpired(IdentityError):
    """Bad or expired single-use token. Identical for both causes."""

    status_code = 400
    default_message = "Invalid or expired token"


class InvalidSessionToken(IdentityError):
    """Session token is malformed, forged or expired."""

    status_code = 401
    default_message = "Invalid or expired token. Please sign in again."


class NotFound(IdentityError):
    status_code = 404
    default_message = "Account not found"


class AlreadyVerified(IdentityError):
    status_code = 409
    default_message = "Email is already verified"


class LinkFailed(IdentityError):
    """An OAuth profile could not be linked to an account."""

    status_code = 400
    default_message = "Could not link external account"


class DeliveryFailed(IdentityError):
    """A notification that had to be delivered was not."""

    status_code = 503
    default_message = "Could not send email. Please try again later."


class Internal(IdentityError):
    """Repository or crypto failure not attributable to caller input."""

    status_code = 500
    default_message = "Internal server error"
