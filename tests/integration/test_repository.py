"""Account repository against a real (SQLite) database."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from quickquest.kernel.identity.repository import (
    SqlAlchemyAccountRepository,
    UniquenessViolation,
    _violated_field,
)
from quickquest.kernel.identity.tokens import TokenShape, digest_token


def _integrity_error(message: str) -> IntegrityError:
    return IntegrityError("INSERT INTO accounts ...", {}, Exception(message))


class TestViolatedField:

    def test_postgres_constraint_name(self):
        error = _integrity_error(
            'duplicate key value violates unique constraint "ix_accounts_email"\n'
            "DETAIL:  Key (email)=(username@x.com) already exists."
        )

        assert _violated_field(error) == "email"

    def test_postgres_ignores_conflicting_value(self):
        error = _integrity_error(
            'duplicate key value violates unique constraint "ix_accounts_username"\n'
            "DETAIL:  Key (username)=(email_verification_token) already exists."
        )

        assert _violated_field(error) == "username"

    def test_sqlite_column_list(self):
        assert _violated_field(_integrity_error("UNIQUE constraint failed: accounts.email")) == "email"
        assert (
            _violated_field(_integrity_error("UNIQUE constraint failed: accounts.email_verification_token"))
            == "email_verification_token"
        )
        assert (
            _violated_field(_integrity_error(
                "UNIQUE constraint failed: account_identities.provider, account_identities.provider_id"
            ))
            == "provider"
        )

    def test_unknown_constraint(self):
        assert _violated_field(_integrity_error("NOT NULL constraint failed: accounts.username")) is None


class TestSqlAlchemyAccountRepository:

    @pytest.mark.asyncio
    async def test_duplicate_username_names_the_field(self, db_session):
        repository = SqlAlchemyAccountRepository(db_session)
        await repository.create(email="a@x.com", username="alice")

        with pytest.raises(UniquenessViolation) as excinfo:
            await repository.create(email="b@x.com", username="alice")

        assert excinfo.value.field == "username"
        # Only the failed insert was rolled back
        assert await repository.find_by_email("a@x.com") is not None

    @pytest.mark.asyncio
    async def test_find_by_verification_token(self, db_session, minter):
        repository = SqlAlchemyAccountRepository(db_session)
        minted = minter.issue(timedelta(hours=24), TokenShape.OPAQUE)
        account = await repository.create(
            email="a@x.com",
            username="alice",
            email_verification_token=minted.digest,
            email_verification_expires_at=minted.expires_at,
        )

        assert (await repository.find_by_verification_token(minted.digest)).id == account.id
        assert await repository.find_by_verification_token(digest_token(minted.token + "0")) is None
        assert await repository.find_by_reset_token(minted.digest) is None

    @pytest.mark.asyncio
    async def test_find_by_reset_token(self, db_session, minter):
        repository = SqlAlchemyAccountRepository(db_session)
        account = await repository.create(email="a@x.com", username="alice", password_hash="x")
        minted = minter.issue(timedelta(hours=1), TokenShape.NUMERIC_CODE)
        await repository.update(
            account.id,
            password_reset_token=minted.digest,
            password_reset_expires_at=minted.expires_at,
        )

        assert (await repository.find_by_reset_token(minted.digest)).id == account.id

        consumed = await repository.consume_reset_token(minted.digest, minter.now(), "new-hash")

        assert consumed.password_hash == "new-hash"
        assert await repository.find_by_reset_token(minted.digest) is None
