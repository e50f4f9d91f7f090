"""
Identity and credential lifecycle.
"""

from quickquest.kernel.identity.account_resolver import AccountResolver, LinkOutcome, Resolution
from quickquest.kernel.identity.credential_service import CredentialService, IdentitySettings
from quickquest.kernel.identity.errors import (
    AlreadyVerified,
    Conflict,
    DeliveryFailed,
    IdentityError,
    Internal,
    InvalidOrExpired,
    InvalidSessionToken,
    LinkFailed,
    NotFound,
    Unauthorized,
    ValidationFailed,
)
from quickquest.kernel.identity.jwt import SessionClaims, SessionTokenCodec
from quickquest.kernel.identity.oauth_callback import OAuthCallbackHandler
from quickquest.kernel.identity.password import PasswordHasher
from quickquest.kernel.identity.repository import (
    AccountRepository,
    SqlAlchemyAccountRepository,
    UniquenessViolation,
)
from quickquest.kernel.identity.tokens import MintedToken, TokenMinter, TokenShape, digest_token
from quickquest.kernel.identity.types import AuthResult, OAuthProfile, OAuthProvider, PublicUser

__all__ = [
    "AccountResolver",
    "LinkOutcome",
    "Resolution",
    "CredentialService",
    "IdentitySettings",
    "AlreadyVerified",
    "Conflict",
    "DeliveryFailed",
    "IdentityError",
    "Internal",
    "InvalidOrExpired",
    "InvalidSessionToken",
    "LinkFailed",
    "NotFound",
    "Unauthorized",
    "ValidationFailed",
    "SessionClaims",
    "SessionTokenCodec",
    "OAuthCallbackHandler",
    "PasswordHasher",
    "AccountRepository",
    "SqlAlchemyAccountRepository",
    "UniquenessViolation",
    "MintedToken",
    "TokenMinter",
    "TokenShape",
    "digest_token",
    "AuthResult",
    "OAuthProfile",
    "OAuthProvider",
    "PublicUser",
]
