"""
FastAPI dependencies for database sessions, identity services and authentication.
"""

from functools import lru_cache
from typing import Annotated, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from quickquest.api.oauth import OAuthClient
from quickquest.config import Settings, get_settings
from quickquest.database import get_db
from quickquest.kernel.identity.account_resolver import AccountResolver
from quickquest.kernel.identity.credential_service import CredentialService, IdentitySettings
from quickquest.kernel.identity.errors import InvalidSessionToken
from quickquest.kernel.identity.jwt import SessionTokenCodec
from quickquest.kernel.identity.oauth_callback import OAuthCallbackHandler
from quickquest.kernel.identity.password import PasswordHasher
from quickquest.kernel.identity.repository import SqlAlchemyAccountRepository
from quickquest.kernel.identity.tokens import TokenMinter
from quickquest.kernel.identity.types import OAuthProvider, PublicUser
from quickquest.notifications.dispatcher import NotificationDispatcher

# Security scheme
security = HTTPBearer(auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]


@lru_cache
def get_password_hasher() -> PasswordHasher:
    return PasswordHasher(rounds=get_settings().bcrypt_rounds)


@lru_cache
def get_session_codec() -> SessionTokenCodec:
    settings = get_settings()
    return SessionTokenCodec(
        secret_key=settings.secret_key,
        algorithm=settings.algorithm,
        expire_days=settings.session_token_expire_days,
    )


def get_token_minter() -> TokenMinter:
    return TokenMinter()


def get_notifications(request: Request) -> NotificationDispatcher:
    """Process-wide dispatcher owned by the application."""
    return request.app.state.notifications


def get_oauth_clients(request: Request) -> Dict[OAuthProvider, OAuthClient]:
    return request.app.state.oauth_clients


Codec = Annotated[SessionTokenCodec, Depends(get_session_codec)]


def get_credential_service(
    db: DbSession,
    settings: AppSettings,
    codec: Codec,
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
    minter: Annotated[TokenMinter, Depends(get_token_minter)],
    notifications: Annotated[NotificationDispatcher, Depends(get_notifications)],
) -> CredentialService:
    return CredentialService(
        repository=SqlAlchemyAccountRepository(db),
        hasher=hasher,
        minter=minter,
        codec=codec,
        notifications=notifications,
        settings=IdentitySettings.from_settings(settings),
    )


def get_oauth_callback_handler(db: DbSession, codec: Codec) -> OAuthCallbackHandler:
    resolver = AccountResolver(SqlAlchemyAccountRepository(db))
    return OAuthCallbackHandler(resolver, codec)


Credentials = Annotated[CredentialService, Depends(get_credential_service)]
OAuthCallback = Annotated[OAuthCallbackHandler, Depends(get_oauth_callback_handler)]
OAuthClients = Annotated[Dict[OAuthProvider, OAuthClient], Depends(get_oauth_clients)]


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    service: Credentials,
) -> PublicUser:
    """Get the account behind the bearer token or raise 401."""
    if not credentials:
        raise InvalidSessionToken("Not authenticated")
    return await service.get_me(credentials.credentials)


CurrentUser = Annotated[PublicUser, Depends(get_current_user)]
