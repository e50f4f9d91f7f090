"""
Authentication schemas.
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from quickquest.kernel.identity.policy import normalize_username, validate_password
from quickquest.kernel.identity.types import PublicUser


class RegisterRequest(BaseModel):
    """Local account registration request."""

    email: EmailStr
    username: str = Field(..., min_length=3, max_length=30)
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("username")
    @classmethod
    def check_username(cls, v: str) -> str:
        return normalize_username(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password(v)


class LoginRequest(BaseModel):
    """Password login request."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=256)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Reset code from the email plus the new password."""

    token: str = Field(..., min_length=1, max_length=256)
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password(v)


class ResendVerificationRequest(BaseModel):
    email: EmailStr


class TokenResponse(BaseModel):
    """Session token response."""

    token: str
    token_type: str = "bearer"
    expires_in: int
    user: PublicUser
    message: Optional[str] = None
