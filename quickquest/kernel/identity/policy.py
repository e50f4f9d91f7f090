"""
Input policies for credentials and identifiers.

Run at the boundary, before any hashing or repository access. Every
rejection is a ValidationFailed (which is also a ValueError, so these
functions double as pydantic field validators).
"""

import re

from email_validator import EmailNotValidError, validate_email

from quickquest.kernel.identity.errors import ValidationFailed

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


def validate_password(password: str) -> str:
    """Enforce the password policy and return the password unchanged."""
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationFailed(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters",
            details={"field": "password"},
        )
    if len(password) > PASSWORD_MAX_LENGTH:
        raise ValidationFailed(
            f"Password must be at most {PASSWORD_MAX_LENGTH} characters",
            details={"field": "password"},
        )
    if not any(c.isupper() for c in password):
        raise ValidationFailed(
            "Password must contain at least one uppercase letter",
            details={"field": "password"},
        )
    if not any(c.islower() for c in password):
        raise ValidationFailed(
            "Password must contain at least one lowercase letter",
            details={"field": "password"},
        )
    if not any(c.isdigit() for c in password):
        raise ValidationFailed(
            "Password must contain at least one digit",
            details={"field": "password"},
        )
    return password


def normalize_username(username: str) -> str:
    """Enforce the username policy and return the stored (lowercase) form."""
    candidate = username.strip()
    if not USERNAME_MIN_LENGTH <= len(candidate) <= USERNAME_MAX_LENGTH:
        raise ValidationFailed(
            f"Username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} characters",
            details={"field": "username"},
        )
    if not USERNAME_PATTERN.match(candidate):
        raise ValidationFailed(
            "Username may only contain letters, digits and underscores",
            details={"field": "username"},
        )
    return candidate.lower()


def normalize_email(email: str) -> str:
    """Check email syntax and return the stored (lowercase) form."""
    candidate = email.strip()
    try:
        result = validate_email(candidate, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationFailed("Invalid email address", details={"field": "email"}) from e
    return result.normalized.lower()
