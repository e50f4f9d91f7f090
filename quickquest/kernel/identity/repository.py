"""
Account repository: the only component that talks to the database.

Atomicity contract:
- create/update/add_identity write inside a SAVEPOINT; a uniqueness
  violation rolls back only that write and surfaces as UniquenessViolation.
- consume_* are a single conditional UPDATE keyed on the token digest and
  its expiry, so of two racing consumers exactly one wins.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Select, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quickquest.kernel.models.account import Account, AccountIdentity


class UniquenessViolation(Exception):
    """A write collided with a unique constraint."""

    def __init__(self, field: Optional[str] = None):
        self.field = field
        super().__init__(f"Uniqueness violation on {field or 'unknown field'}")


# (PostgreSQL constraint name, SQLite column list, field)
_UNIQUE_CONSTRAINTS = (
    ("uq_account_identities_provider_subject", "account_identities.provider, account_identities.provider_id", "provider"),
    ("uq_account_identities_account_provider", "account_identities.account_id, account_identities.provider", "provider"),
    ("accounts_password_reset_token_key", "accounts.password_reset_token", "password_reset_token"),
    ("accounts_email_verification_token_key", "accounts.email_verification_token", "email_verification_token"),
    ("ix_accounts_username", "accounts.username", "username"),
    ("ix_accounts_email", "accounts.email", "email"),
)


def _violated_field(error: IntegrityError) -> Optional[str]:
    """Name the field behind a unique violation from the constraint the driver reports."""
    lines = str(error.orig).strip().splitlines()
    # Only the first line: PostgreSQL's DETAIL line echoes the conflicting values
    headline = lines[0].strip() if lines else ""
    for constraint, columns, field in _UNIQUE_CONSTRAINTS:
        if f'"{constraint}"' in headline or headline.endswith(columns):
            return field
    return None


class AccountRepository(ABC):
    """Storage operations the identity flows depend on."""

    @abstractmethod
    async def get_by_id(self, account_id: uuid.UUID) -> Optional[Account]:
        ...

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[Account]:
        ...

    @abstractmethod
    async def find_by_username(self, username: str) -> Optional[Account]:
        ...

    @abstractmethod
    async def find_by_provider_id(self, provider: str, provider_id: str) -> Optional[Account]:
        ...

    @abstractmethod
    async def find_by_verification_token(self, digest: str) -> Optional[Account]:
        ...

    @abstractmethod
    async def find_by_reset_token(self, digest: str) -> Optional[Account]:
        ...

    @abstractmethod
    async def create(self, **fields: Any) -> Account:
        """Insert an account. Raises UniquenessViolation."""

    @abstractmethod
    async def update(self, account_id: uuid.UUID, **fields: Any) -> Optional[Account]:
        """Update an account. Raises UniquenessViolation."""

    @abstractmethod
    async def add_identity(
        self,
        account_id: uuid.UUID,
        provider: str,
        provider_id: str,
        *,
        mark_verified: bool = False,
    ) -> Optional[Account]:
        """Bind a provider subject to an account. Raises UniquenessViolation."""

    @abstractmethod
    async def consume_verification_token(self, digest: str, now: datetime) -> Optional[Account]:
        """Clear a live verification token and mark the account verified, atomically."""

    @abstractmethod
    async def consume_reset_token(
        self,
        digest: str,
        now: datetime,
        password_hash: str,
    ) -> Optional[Account]:
        """Clear a live reset token and replace the password hash, atomically."""


class SqlAlchemyAccountRepository(AccountRepository):
    """
    AccountRepository over an AsyncSession.

    Does not commit; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _one(self, query: Select) -> Optional[Account]:
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_by_id(self, account_id: uuid.UUID) -> Optional[Account]:
        return await self.session.get(Account, account_id)

    async def find_by_email(self, email: str) -> Optional[Account]:
        return await self._one(select(Account).where(Account.email == email.lower().strip()))

    async def find_by_username(self, username: str) -> Optional[Account]:
        return await self._one(select(Account).where(Account.username == username.lower().strip()))

    async def find_by_provider_id(self, provider: str, provider_id: str) -> Optional[Account]:
        query = (
            select(Account)
            .join(AccountIdentity, AccountIdentity.account_id == Account.id)
            .where(
                AccountIdentity.provider == provider,
                AccountIdentity.provider_id == provider_id,
            )
        )
        return await self._one(query)

    async def find_by_verification_token(self, digest: str) -> Optional[Account]:
        return await self._one(select(Account).where(Account.email_verification_token == digest))

    async def find_by_reset_token(self, digest: str) -> Optional[Account]:
        return await self._one(select(Account).where(Account.password_reset_token == digest))

    async def create(self, **fields: Any) -> Account:
        fields.setdefault("identities", [])
        account = Account(**fields)
        try:
            async with self.session.begin_nested():
                self.session.add(account)
        except IntegrityError as e:
            raise UniquenessViolation(_violated_field(e)) from e
        return account

    async def update(self, account_id: uuid.UUID, **fields: Any) -> Optional[Account]:
        account = await self.get_by_id(account_id)
        if account is None:
            return None
        try:
            async with self.session.begin_nested():
                for key, value in fields.items():
                    setattr(account, key, value)
        except IntegrityError as e:
            await self.session.refresh(account)
            raise UniquenessViolation(_violated_field(e)) from e
        return account

    async def add_identity(
        self,
        account_id: uuid.UUID,
        provider: str,
        provider_id: str,
        *,
        mark_verified: bool = False,
    ) -> Optional[Account]:
        account = await self.get_by_id(account_id)
        if account is None:
            return None
        try:
            async with self.session.begin_nested():
                account.identities.append(
                    AccountIdentity(provider=provider, provider_id=provider_id)
                )
                if mark_verified:
                    account.is_verified = True
        except IntegrityError as e:
            await self.session.refresh(account)
            raise UniquenessViolation(_violated_field(e)) from e
        return account

    async def consume_verification_token(self, digest: str, now: datetime) -> Optional[Account]:
        statement = (
            update(Account)
            .where(
                Account.email_verification_token == digest,
                Account.email_verification_expires_at > now,
            )
            .values(
                is_verified=True,
                email_verification_token=None,
                email_verification_expires_at=None,
            )
            .returning(Account.id)
            .execution_options(synchronize_session=False)
        )
        return await self._consume(statement)

    async def consume_reset_token(
        self,
        digest: str,
        now: datetime,
        password_hash: str,
    ) -> Optional[Account]:
        statement = (
            update(Account)
            .where(
                Account.password_reset_token == digest,
                Account.password_reset_expires_at > now,
            )
            .values(
                password_hash=password_hash,
                password_reset_token=None,
                password_reset_expires_at=None,
            )
            .returning(Account.id)
            .execution_options(synchronize_session=False)
        )
        return await self._consume(statement)

    async def _consume(self, statement) -> Optional[Account]:
        result = await self.session.execute(statement)
        account_id = result.scalar_one_or_none()
        if account_id is None:
            return None
        return await self.session.get(Account, account_id, populate_existing=True)
