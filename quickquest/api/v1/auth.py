"""
Authentication endpoints.
"""

from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Cookie, Query, status
from fastapi.responses import RedirectResponse

from quickquest.api.deps import AppSettings, Codec, Credentials, CurrentUser, OAuthCallback, OAuthClients
from quickquest.api.oauth import OAuthError, callback_url
from quickquest.config import Settings
from quickquest.kernel.identity.credential_service import (
    LOGIN_MESSAGE,
    REGISTER_MESSAGE,
    RESEND_VERIFICATION_MESSAGE,
    RESET_PASSWORD_MESSAGE,
    VERIFY_EMAIL_MESSAGE,
)
from quickquest.kernel.identity.errors import IdentityError, NotFound
from quickquest.kernel.identity.types import OAuthProvider, PublicUser
from quickquest.logging_config import get_logger
from quickquest.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    TokenResponse,
    VerifyEmailRequest,
)
from quickquest.schemas.common import MessageResponse

logger = get_logger(__name__)

router = APIRouter()

OAUTH_STATE_COOKIE = "oauth_state"
OAUTH_STATE_MAX_AGE = 600
OAUTH_ERROR = "oauth_failed"


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, service: Credentials):
    """
    Register a new local account.

    The account starts unverified; a verification link is emailed in the
    background.
    """
    result = await service.register(
        email=data.email,
        username=data.username,
        password=data.password,
    )
    return TokenResponse(**result.model_dump(), message=REGISTER_MESSAGE)


@router.post("/login", response_model=TokenResponse)
async def login(data: LoginRequest, service: Credentials):
    """Sign in with email and password."""
    result = await service.login(email=data.email, password=data.password)
    return TokenResponse(**result.model_dump(), message=LOGIN_MESSAGE)


@router.get("/me", response_model=PublicUser)
async def get_me(user: CurrentUser):
    """Get the signed-in account."""
    return user


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(data: VerifyEmailRequest, service: Credentials):
    await service.verify_email(data.token)
    return MessageResponse(message=VERIFY_EMAIL_MESSAGE)


@router.get("/verify-email", response_model=MessageResponse)
async def verify_email_link(service: Credentials, token: str = Query(..., min_length=1, max_length=256)):
    """Same as POST, for the link in the verification email."""
    await service.verify_email(token)
    return MessageResponse(message=VERIFY_EMAIL_MESSAGE)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(data: ForgotPasswordRequest, service: Credentials):
    """
    Email a password reset code.

    The response is the same whether or not the email is registered.
    """
    message = await service.forgot_password(data.email)
    return MessageResponse(message=message)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(data: ResetPasswordRequest, service: Credentials):
    await service.reset_password(data.token, data.password)
    return MessageResponse(message=RESET_PASSWORD_MESSAGE)


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(data: ResendVerificationRequest, service: Credentials):
    await service.resend_verification(data.email)
    return MessageResponse(message=RESEND_VERIFICATION_MESSAGE)


# OAuth routes are declared last so /{provider} does not shadow the fixed paths above


def _provider(name: str, clients: OAuthClients) -> OAuthProvider:
    try:
        provider = OAuthProvider(name)
    except ValueError:
        raise NotFound("Unknown sign-in provider") from None
    if provider not in clients:
        raise NotFound("Sign-in provider is not configured")
    return provider


def _frontend_redirect(settings: Settings, **params: str) -> RedirectResponse:
    return RedirectResponse(
        f"{settings.frontend_url.rstrip('/')}?{urlencode(params)}",
        status_code=status.HTTP_302_FOUND,
    )


@router.get("/{provider}")
async def oauth_start(provider: str, settings: AppSettings, codec: Codec, clients: OAuthClients):
    """Redirect to the provider's consent screen."""
    selected = _provider(provider, clients)
    state = codec.issue_state(selected.value)
    response = RedirectResponse(
        clients[selected].authorization_url(state, callback_url(settings, selected)),
        status_code=status.HTTP_302_FOUND,
    )
    response.set_cookie(
        OAUTH_STATE_COOKIE,
        state,
        max_age=OAUTH_STATE_MAX_AGE,
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
        path=f"{settings.api_v1_prefix}/auth",
    )
    return response


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    settings: AppSettings,
    codec: Codec,
    clients: OAuthClients,
    handler: OAuthCallback,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    oauth_state: Optional[str] = Cookie(default=None),
):
    """
    Finish the provider handshake and hand the frontend a session.

    Every failure redirects with ``error=oauth_failed``; no session is issued.
    """
    selected = _provider(provider, clients)

    if error or not code:
        logger.warning("OAuth callback without code", extra={"provider": selected.value, "error": error})
        response = _frontend_redirect(settings, error=OAUTH_ERROR)
    elif not state or state != oauth_state or not codec.verify_state(state, selected.value):
        logger.warning("OAuth state mismatch", extra={"provider": selected.value})
        response = _frontend_redirect(settings, error=OAUTH_ERROR)
    else:
        client = clients[selected]
        try:
            access_token = await client.exchange_code(code, callback_url(settings, selected))
            profile = await client.fetch_profile(access_token)
            result = await handler.handle(profile)
        except (OAuthError, IdentityError) as e:
            logger.warning("OAuth sign-in failed: %s", e, extra={"provider": selected.value})
            response = _frontend_redirect(settings, error=OAUTH_ERROR)
        else:
            response = _frontend_redirect(
                settings,
                token=result.token,
                user=result.user.model_dump_json(),
            )

    response.delete_cookie(OAUTH_STATE_COOKIE, path=f"{settings.api_v1_prefix}/auth")
    return response
