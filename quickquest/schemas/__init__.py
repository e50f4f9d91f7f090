"""
Pydantic schemas for API request/response validation.
"""

from quickquest.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    TokenResponse,
    VerifyEmailRequest,
)
from quickquest.schemas.common import ErrorResponse, HealthResponse, MessageResponse

__all__ = [
    "ForgotPasswordRequest",
    "LoginRequest",
    "RegisterRequest",
    "ResendVerificationRequest",
    "ResetPasswordRequest",
    "TokenResponse",
    "VerifyEmailRequest",
    "ErrorResponse",
    "HealthResponse",
    "MessageResponse",
]
