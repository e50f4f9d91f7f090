"""
Value types shared by the identity flows.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class OAuthProvider(str, Enum):
    """External identity providers. Adding one is a code change."""
    GOOGLE = "google"
    GITHUB = "github"


class OAuthProfile(BaseModel):
    """Provider profile normalized by the handshake adapter."""

    model_config = ConfigDict(frozen=True)

    provider: OAuthProvider
    provider_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None


class PublicUser(BaseModel):
    """
    Public projection of an account.

    Never carries the password hash or any token field.
    """

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    username: str
    display_name: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None
    provider: str
    is_verified: bool
    is_pro: bool
    created_at: datetime


class AuthResult(BaseModel):
    """A session token together with the account it was issued for."""

    token: str
    token_type: str = "bearer"
    expires_in: int
    user: PublicUser
