"""
Single-use token minting for email verification and password reset.

Tokens come from the ``secrets`` CSPRNG. Only their SHA-256 digest is ever
stored; the plaintext goes to the user and nowhere else.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable

OPAQUE_TOKEN_BYTES = 32
NUMERIC_CODE_DIGITS = 6

VERIFICATION_TOKEN_TTL = timedelta(hours=24)
RESET_TOKEN_TTL = timedelta(hours=1)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenShape(str, Enum):
    """Shape of a minted token."""
    OPAQUE = "opaque"              # 64 hex chars, delivered inside a link
    NUMERIC_CODE = "numeric_code"  # 6 digits, retyped by a human


@dataclass(frozen=True)
class MintedToken:
    """A freshly minted token and the instant it stops being valid."""

    token: str
    expires_at: datetime

    @property
    def digest(self) -> str:
        return digest_token(self.token)


def digest_token(token: str) -> str:
    """SHA-256 hex digest of a token, the only form that is persisted."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenMinter:
    """
    Pure generator of random, time-bounded tokens.

    Knows nothing about accounts. The clock is injectable so expiry can be
    tested without sleeping.
    """

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock

    def now(self) -> datetime:
        return self.clock()

    def issue(self, ttl: timedelta, shape: TokenShape = TokenShape.OPAQUE) -> MintedToken:
        """
        Mint a token valid for ``ttl``.

        Args:
            ttl: Lifetime of the token
            shape: OPAQUE for links, NUMERIC_CODE for codes typed by hand

        Returns:
            MintedToken with ``expires_at = now + ttl``
        """
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")

        if shape is TokenShape.NUMERIC_CODE:
            token = f"{secrets.randbelow(10 ** NUMERIC_CODE_DIGITS):0{NUMERIC_CODE_DIGITS}d}"
        else:
            token = secrets.token_hex(OPAQUE_TOKEN_BYTES)

        return MintedToken(token=token, expires_at=self.now() + ttl)
