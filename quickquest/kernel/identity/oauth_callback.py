"""
Final step of an OAuth sign-in: profile in, session out.
"""

from quickquest.kernel.identity.account_resolver import AccountResolver
from quickquest.kernel.identity.jwt import SessionClaims, SessionTokenCodec
from quickquest.kernel.identity.types import AuthResult, OAuthProfile, PublicUser
from quickquest.logging_config import get_logger

logger = get_logger(__name__)


class OAuthCallbackHandler:
    """Resolve a provider profile to an account and sign a session for it."""

    def __init__(self, resolver: AccountResolver, codec: SessionTokenCodec):
        self.resolver = resolver
        self.codec = codec

    async def handle(self, profile: OAuthProfile) -> AuthResult:
        """
        Raises:
            LinkFailed: the profile cannot be linked to any account
            Internal: storage failure during resolution
        """
        resolution = await self.resolver.resolve(profile)
        account = resolution.account
        logger.info(
            "OAuth sign-in",
            extra={
                "provider": profile.provider.value,
                "outcome": resolution.outcome.value,
                "account_id": str(account.id),
            },
        )
        return AuthResult(
            token=self.codec.issue(SessionClaims.for_account(account)),
            expires_in=self.codec.expires_in,
            user=PublicUser.model_validate(account),
        )
