"""
OAuth 2.0 authorization-code handshake with Google and GitHub.

Each client turns a provider callback into a normalized OAuthProfile; what
happens to that profile is decided by the identity kernel, not here.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from quickquest.config import Settings
from quickquest.kernel.identity.types import OAuthProfile, OAuthProvider
from quickquest.logging_config import get_logger

logger = get_logger(__name__)

HTTP_TIMEOUT = 10.0

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_API_URL = "https://api.github.com"


class OAuthError(Exception):
    """The provider handshake failed."""


class OAuthClient(ABC):
    """Authorization-code client for one provider."""

    provider: OAuthProvider
    authorize_endpoint: str
    token_endpoint: str
    scope: str

    def __init__(self, client_id: str, client_secret: str, http: httpx.AsyncClient):
        self.client_id = client_id
        self._client_secret = client_secret
        self.http = http

    def authorization_url(self, state: str, redirect_uri: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": self.scope,
            "state": state,
        }
        params.update(self.extra_authorize_params())
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    def extra_authorize_params(self) -> Dict[str, str]:
        return {}

    async def exchange_code(self, code: str, redirect_uri: str) -> str:
        """Trade an authorization code for an access token."""
        data = {
            "client_id": self.client_id,
            "client_secret": self._client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }
        payload = await self._request(
            "POST",
            self.token_endpoint,
            data=data,
            headers={"Accept": "application/json"},
        )
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            # GitHub answers 200 with {"error": ...} for a bad code
            error = payload.get("error") if isinstance(payload, dict) else None
            raise OAuthError(f"{self.provider.value} token exchange failed: {error or 'no access token'}")
        return access_token

    @abstractmethod
    async def fetch_profile(self, access_token: str) -> OAuthProfile:
        ...

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self.http.request(method, url, timeout=HTTP_TIMEOUT, **kwargs)
        except httpx.HTTPError as e:
            raise OAuthError(f"{self.provider.value} request failed: {e.__class__.__name__}") from e
        if response.status_code >= 400:
            raise OAuthError(f"{self.provider.value} returned HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise OAuthError(f"{self.provider.value} returned a non-JSON body") from e


class GoogleOAuthClient(OAuthClient):
    provider = OAuthProvider.GOOGLE
    authorize_endpoint = GOOGLE_AUTHORIZE_URL
    token_endpoint = GOOGLE_TOKEN_URL
    scope = "openid email profile"

    def extra_authorize_params(self) -> Dict[str, str]:
        return {"prompt": "select_account"}

    async def fetch_profile(self, access_token: str) -> OAuthProfile:
        info = await self._request(
            "GET",
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return google_profile(info)


class GitHubOAuthClient(OAuthClient):
    provider = OAuthProvider.GITHUB
    authorize_endpoint = GITHUB_AUTHORIZE_URL
    token_endpoint = GITHUB_TOKEN_URL
    scope = "read:user user:email"

    async def fetch_profile(self, access_token: str) -> OAuthProfile:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
        }
        user = await self._request("GET", f"{GITHUB_API_URL}/user", headers=headers)
        try:
            emails = await self._request("GET", f"{GITHUB_API_URL}/user/emails", headers=headers)
        except OAuthError:
            # Token without the user:email scope; fall back to the public email
            logger.warning("GitHub email list unavailable")
            emails = []
        return github_profile(user, emails if isinstance(emails, list) else [])


def google_profile(info: Dict[str, Any]) -> OAuthProfile:
    """Normalize a Google userinfo document. Unverified emails are dropped."""
    if not info.get("sub"):
        raise OAuthError("google profile has no subject")
    email = info.get("email") if info.get("email_verified") else None
    return OAuthProfile(
        provider=OAuthProvider.GOOGLE,
        provider_id=str(info["sub"]),
        email=email,
        display_name=info.get("name"),
        first_name=info.get("given_name"),
        last_name=info.get("family_name"),
        avatar_url=info.get("picture"),
    )


def select_github_email(emails: List[Dict[str, Any]]) -> Optional[str]:
    """Primary verified address first, then any verified address."""
    verified = [e for e in emails if e.get("verified") and e.get("email")]
    for entry in verified:
        if entry.get("primary"):
            return entry["email"]
    return verified[0]["email"] if verified else None


def github_profile(user: Dict[str, Any], emails: List[Dict[str, Any]]) -> OAuthProfile:
    if user.get("id") is None:
        raise OAuthError("github profile has no id")
    name = user.get("name") or None
    first_name, last_name = None, None
    if name:
        first_name, _, rest = name.partition(" ")
        last_name = rest or None
    return OAuthProfile(
        provider=OAuthProvider.GITHUB,
        provider_id=str(user["id"]),
        email=select_github_email(emails) or user.get("email"),
        display_name=name or user.get("login"),
        first_name=first_name,
        last_name=last_name,
        avatar_url=user.get("avatar_url"),
    )


def build_oauth_clients(settings: Settings, http: httpx.AsyncClient) -> Dict[OAuthProvider, OAuthClient]:
    """Clients for every provider that has credentials configured."""
    clients: Dict[OAuthProvider, OAuthClient] = {}
    if settings.google_client_id and settings.google_client_secret:
        clients[OAuthProvider.GOOGLE] = GoogleOAuthClient(
            settings.google_client_id, settings.google_client_secret, http
        )
    if settings.github_client_id and settings.github_client_secret:
        clients[OAuthProvider.GITHUB] = GitHubOAuthClient(
            settings.github_client_id, settings.github_client_secret, http
        )
    return clients


def callback_url(settings: Settings, provider: OAuthProvider) -> str:
    base = settings.oauth_redirect_base_url.rstrip("/")
    return f"{base}{settings.api_v1_prefix}/auth/{provider.value}/callback"
