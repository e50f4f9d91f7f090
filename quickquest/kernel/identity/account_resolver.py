"""
Account resolution for external identity providers.

Maps a provider profile onto exactly one local account: the account already
bound to the provider subject, else the account holding the profile email
(which is then bound), else a newly created account.
"""

import re
import secrets
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from quickquest.kernel.identity.errors import Internal, LinkFailed
from quickquest.kernel.identity.policy import USERNAME_MAX_LENGTH, USERNAME_MIN_LENGTH
from quickquest.kernel.identity.repository import AccountRepository, UniquenessViolation
from quickquest.kernel.identity.types import OAuthProfile
from quickquest.kernel.models.account import Account, AccountIdentity
from quickquest.logging_config import get_logger

logger = get_logger(__name__)

MAX_LINK_ATTEMPTS = 5
USERNAME_SUFFIX_DIGITS = 4
MAX_USERNAME_DRAWS = 20

_NOT_USERNAME_CHARS = re.compile(r"[^a-z0-9_]")


class LinkOutcome(str, Enum):
    EXISTING = "existing"
    LINKED = "linked"
    CREATED = "created"


@dataclass(frozen=True)
class Resolution:
    account: Account
    outcome: LinkOutcome


def username_base(email: str) -> str:
    """Sanitized email local part, sized to leave room for the numeric suffix."""
    local = email.split("@", 1)[0].lower()
    base = _NOT_USERNAME_CHARS.sub("", local)
    if len(base) < USERNAME_MIN_LENGTH:
        base = base.ljust(USERNAME_MIN_LENGTH, "_")
    return base[: USERNAME_MAX_LENGTH - USERNAME_SUFFIX_DIGITS]


class AccountResolver:
    """
    Resolve OAuth profiles to accounts.

    A uniqueness violation means a concurrent callback wrote the same
    identity, email or username first; the failed write has already been
    rolled back to its savepoint, so resolution restarts from the lookup.
    """

    def __init__(self, repository: AccountRepository, max_attempts: int = MAX_LINK_ATTEMPTS):
        self.repository = repository
        self.max_attempts = max_attempts

    async def resolve(self, profile: OAuthProfile) -> Resolution:
        """
        Find, link or create the account for ``profile``.

        Raises:
            LinkFailed: the profile carries no usable email, or its email
                belongs to an account bound to another subject of the
                same provider
            Internal: storage failed, or contention outlasted every attempt
        """
        if not profile.email or "@" not in profile.email:
            raise LinkFailed("Provider did not return an email address")

        email = profile.email.strip().lower()
        provider = profile.provider.value

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._resolve_once(profile, provider, email)
            except UniquenessViolation as e:
                logger.info(
                    "Concurrent account link detected, retrying",
                    extra={"provider": provider, "field": e.field, "attempt": attempt},
                )
            except SQLAlchemyError as e:
                logger.exception("Account resolution failed", extra={"provider": provider})
                raise Internal() from e

        logger.error(
            "Account resolution gave up after %d attempts",
            self.max_attempts,
            extra={"provider": provider},
        )
        raise Internal()

    async def _resolve_once(self, profile: OAuthProfile, provider: str, email: str) -> Resolution:
        account = await self.repository.find_by_provider_id(provider, profile.provider_id)
        if account is not None:
            return Resolution(account, LinkOutcome.EXISTING)

        account = await self.repository.find_by_email(email)
        if account is not None:
            bound_id = account.provider_id_for(provider)
            if bound_id == profile.provider_id:
                return Resolution(account, LinkOutcome.EXISTING)
            if bound_id is not None:
                # One binding per provider per account; never rebind to another subject
                logger.warning(
                    "Email belongs to an account bound to another %s identity",
                    provider,
                    extra={"account_id": str(account.id)},
                )
                raise LinkFailed("This email is already linked to a different sign-in account")
            linked = await self.repository.add_identity(
                account.id,
                provider,
                profile.provider_id,
                mark_verified=True,
            )
            if linked is None:
                raise UniquenessViolation("account")
            logger.info("Linked %s identity to existing account", provider, extra={"account_id": str(linked.id)})
            return Resolution(linked, LinkOutcome.LINKED)

        username = await self._unused_username(email)
        account = await self.repository.create(
            email=email,
            username=username,
            password_hash=None,
            provider=provider,
            first_name=profile.first_name,
            last_name=profile.last_name,
            avatar_url=profile.avatar_url,
            is_verified=True,
            identities=[AccountIdentity(provider=provider, provider_id=profile.provider_id)],
        )
        logger.info("Created account from %s profile", provider, extra={"account_id": str(account.id)})
        return Resolution(account, LinkOutcome.CREATED)

    async def _unused_username(self, email: str) -> str:
        base = username_base(email)
        for _ in range(MAX_USERNAME_DRAWS):
            suffix = f"{secrets.randbelow(10 ** USERNAME_SUFFIX_DIGITS):0{USERNAME_SUFFIX_DIGITS}d}"
            candidate = base + suffix
            if await self.repository.find_by_username(candidate) is None:
                return candidate
        raise UniquenessViolation("username")
