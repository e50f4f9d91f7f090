"""
JWT session token management.

Session tokens are stateless: everything needed to accept one (identity
claims, expiry, signature) travels inside the token. The codec never looks
at the database.
"""

import secrets
import uuid
from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict

from quickquest.kernel.identity.errors import InvalidSessionToken
from quickquest.kernel.identity.tokens import Clock, utc_now

SESSION_TOKEN_TYPE = "session"
OAUTH_STATE_TOKEN_TYPE = "oauth_state"
OAUTH_STATE_TTL = timedelta(minutes=10)


class SessionClaims(BaseModel):
    """Identity claims carried by a session token."""

    model_config = ConfigDict(frozen=True)

    account_id: uuid.UUID
    email: str
    username: str
    is_pro: bool = False

    @classmethod
    def for_account(cls, account) -> "SessionClaims":
        return cls(
            account_id=account.id,
            email=account.email,
            username=account.username,
            is_pro=account.is_pro,
        )


class SessionTokenCodec:
    """
    Signs and verifies session tokens.

    Secret, algorithm and lifetime are fixed at construction; rotating the
    secret invalidates every outstanding session.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expire_days: int = 7,
        clock: Clock = utc_now,
    ):
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.lifetime = timedelta(days=expire_days)
        self.clock = clock

    @property
    def expires_in(self) -> int:
        """Seconds a freshly issued session token stays valid."""
        return int(self.lifetime.total_seconds())

    def issue(self, claims: SessionClaims, expires_delta: Optional[timedelta] = None) -> str:
        """
        Create a signed session token.

        Args:
            claims: Account identity claims
            expires_delta: Optional custom lifetime

        Returns:
            Encoded JWT
        """
        now = self.clock()
        payload = {
            "sub": str(claims.account_id),
            "email": claims.email,
            "username": claims.username,
            "is_pro": claims.is_pro,
            "iat": now,
            "exp": now + (expires_delta or self.lifetime),
            "jti": str(uuid.uuid4()),
            "typ": SESSION_TOKEN_TYPE,
        }
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def parse(self, token: str) -> SessionClaims:
        """
        Verify and decode a session token.

        Raises:
            InvalidSessionToken: malformed token, bad signature, wrong type,
                missing claims or expired
        """
        payload = self._decode(token)
        if payload.get("typ") != SESSION_TOKEN_TYPE:
            raise InvalidSessionToken()
        try:
            return SessionClaims(
                account_id=uuid.UUID(payload["sub"]),
                email=payload["email"],
                username=payload["username"],
                is_pro=payload.get("is_pro", False),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidSessionToken() from e

    def issue_state(self, provider: str) -> str:
        """Short-lived signed value binding an OAuth round trip to this client."""
        now = self.clock()
        payload = {
            "nonce": secrets.token_urlsafe(16),
            "provider": provider,
            "iat": now,
            "exp": now + OAUTH_STATE_TTL,
            "typ": OAUTH_STATE_TOKEN_TYPE,
        }
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def verify_state(self, state: str, provider: str) -> bool:
        try:
            payload = self._decode(state)
        except InvalidSessionToken:
            return False
        return payload.get("typ") == OAUTH_STATE_TOKEN_TYPE and payload.get("provider") == provider

    def _decode(self, token: str) -> dict:
        """Verify signature and expiry; expiry is judged by ``self.clock``."""
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as e:
            raise InvalidSessionToken() from e
        expires_at = payload.get("exp")
        if not isinstance(expires_at, (int, float)) or expires_at <= self.clock().timestamp():
            raise InvalidSessionToken()
        return payload
