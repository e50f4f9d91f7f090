"""Credential flows against a real (SQLite) repository."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from quickquest.kernel.identity.credential_service import FORGOT_PASSWORD_MESSAGE
from quickquest.kernel.identity.errors import (
    AlreadyVerified,
    Conflict,
    DeliveryFailed,
    InvalidOrExpired,
    InvalidSessionToken,
    NotFound,
    Unauthorized,
    ValidationFailed,
)
from quickquest.kernel.identity.repository import SqlAlchemyAccountRepository
from quickquest.kernel.identity.tokens import digest_token
from quickquest.kernel.models.account import Account
from quickquest.notifications.dispatcher import NotificationDispatcher

from tests.conftest import RecordingNotifier


async def _account(session, email: str) -> Account:
    return await SqlAlchemyAccountRepository(session).find_by_email(email)


class TestRegister:

    @pytest.mark.asyncio
    async def test_register_stores_hash_and_sends_verification(self, service, db_session, dispatcher, notifier, hasher):
        result = await service.register("Alice@Example.com", "Alice", "Passw0rd")
        await dispatcher.drain()

        account = await _account(db_session, "alice@example.com")
        token = notifier.last_token("verification")

        assert result.user.email == "alice@example.com"
        assert result.user.username == "alice"
        assert result.user.is_verified is False
        assert result.token
        assert account.password_hash != "Passw0rd"
        assert hasher.verify("Passw0rd", account.password_hash)
        # Only the digest is stored
        assert account.email_verification_token == digest_token(token)

    @pytest.mark.asyncio
    async def test_duplicate_email_and_username(self, service):
        await service.register("alice@example.com", "alice", "Passw0rd")

        with pytest.raises(Conflict, match="Email already registered"):
            await service.register("ALICE@example.com", "other", "Passw0rd")
        with pytest.raises(Conflict, match="Username already taken"):
            await service.register("other@example.com", "ALICE", "Passw0rd")

    @pytest.mark.asyncio
    async def test_policy_runs_before_storage(self, service, db_session):
        with pytest.raises(ValidationFailed):
            await service.register("alice@example.com", "alice", "weak")
        with pytest.raises(ValidationFailed):
            await service.register("not-an-email", "alice", "Passw0rd")
        with pytest.raises(ValidationFailed):
            await service.register("alice@example.com", "a!", "Passw0rd")

        assert await db_session.scalar(select(func.count()).select_from(Account)) == 0

    @pytest.mark.asyncio
    async def test_concurrent_registration_conflicts(self, session_maker, make_service):
        async def attempt(username: str):
            async with session_maker() as session:
                try:
                    await make_service(session).register("race@example.com", username, "Passw0rd")
                    await session.commit()
                    return "created"
                except Conflict:
                    await session.rollback()
                    return "conflict"

        outcomes = await asyncio.gather(attempt("racer_one"), attempt("racer_two"))

        assert sorted(outcomes) == ["conflict", "created"]


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_success(self, service):
        await service.register("alice@example.com", "alice", "Passw0rd")

        result = await service.login("Alice@Example.com", "Passw0rd")

        assert result.user.username == "alice"
        assert result.expires_in == 7 * 24 * 3600

    @pytest.mark.asyncio
    async def test_failures_are_indistinguishable(self, service, db_session):
        await service.register("alice@example.com", "alice", "Passw0rd")
        await SqlAlchemyAccountRepository(db_session).create(
            email="oauth@example.com",
            username="oauthonly",
            provider="google",
            is_verified=True,
        )

        errors = []
        for email, password in [
            ("alice@example.com", "WrongPassw0rd"),
            ("nobody@example.com", "Passw0rd"),
            ("oauth@example.com", "Passw0rd"),
        ]:
            with pytest.raises(Unauthorized) as exc_info:
                await service.login(email, password)
            errors.append((exc_info.value.status_code, exc_info.value.message))

        assert errors == [(401, "Invalid email or password")] * 3

    @pytest.mark.asyncio
    async def test_login_rehashes_at_new_cost(self, db_session, make_service, hasher):
        await make_service(db_session).register("alice@example.com", "alice", "Passw0rd")
        hasher.rounds = 5

        await make_service(db_session).login("alice@example.com", "Passw0rd")

        account = await _account(db_session, "alice@example.com")
        assert account.password_hash.startswith("$2b$05$")
        assert hasher.verify("Passw0rd", account.password_hash)


class TestGetMe:

    @pytest.mark.asyncio
    async def test_returns_public_projection(self, service):
        result = await service.register("alice@example.com", "alice", "Passw0rd")

        me = await service.get_me(result.token)

        assert me.id == result.user.id
        assert "password_hash" not in me.model_dump()
        assert not any("token" in key for key in me.model_dump())

    @pytest.mark.asyncio
    async def test_invalid_token(self, service):
        with pytest.raises(InvalidSessionToken):
            await service.get_me("garbage")


class TestVerifyEmail:

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, service, db_session, dispatcher, notifier):
        await service.register("alice@example.com", "alice", "Passw0rd")
        await dispatcher.drain()
        token = notifier.last_token("verification")

        account = await service.verify_email(token)
        await dispatcher.drain()

        assert account.is_verified is True
        assert account.email_verification_token is None
        assert account.email_verification_expires_at is None
        assert notifier.sent[-1][0] == "welcome"
        with pytest.raises(InvalidOrExpired):
            await service.verify_email(token)

    @pytest.mark.asyncio
    async def test_expired_token(self, service, dispatcher, notifier, clock):
        await service.register("alice@example.com", "alice", "Passw0rd")
        await dispatcher.drain()
        clock.advance(timedelta(hours=24))

        with pytest.raises(InvalidOrExpired):
            await service.verify_email(notifier.last_token("verification"))

    @pytest.mark.asyncio
    async def test_unknown_and_empty_tokens(self, service):
        with pytest.raises(InvalidOrExpired):
            await service.verify_email("0" * 64)
        with pytest.raises(InvalidOrExpired):
            await service.verify_email("")

    @pytest.mark.asyncio
    async def test_tokens_are_matched_without_surrounding_whitespace(self, service, dispatcher, notifier, hasher):
        await service.register("alice@example.com", "alice", "Passw0rd")
        await service.forgot_password("alice@example.com")
        await dispatcher.drain()

        verified = await service.verify_email(f"  {notifier.last_token('verification')}\n")
        reset = await service.reset_password(f" {notifier.last_token('password_reset')} ", "NewPassw0rd")

        assert verified.is_verified is True
        assert hasher.verify("NewPassw0rd", reset.password_hash)


class TestPasswordRecovery:

    @pytest.mark.asyncio
    async def test_forgot_password_is_generic(self, service, db_session, dispatcher, notifier):
        await service.register("alice@example.com", "alice", "Passw0rd")
        await SqlAlchemyAccountRepository(db_session).create(
            email="oauth@example.com",
            username="oauthonly",
            provider="github",
            is_verified=True,
        )

        messages = [
            await service.forgot_password("alice@example.com"),
            await service.forgot_password("unknown@example.com"),
            await service.forgot_password("oauth@example.com"),
        ]
        await dispatcher.drain()

        assert messages == [FORGOT_PASSWORD_MESSAGE] * 3
        assert [email for kind, email, _ in notifier.sent if kind == "password_reset"] == ["alice@example.com"]
        oauth_account = await _account(db_session, "oauth@example.com")
        assert oauth_account.password_reset_token is None

    @pytest.mark.asyncio
    async def test_reset_with_code(self, service, db_session, dispatcher, notifier, hasher):
        await service.register("alice@example.com", "alice", "Passw0rd")
        await service.forgot_password("alice@example.com")
        await dispatcher.drain()
        code = notifier.last_token("password_reset")

        assert len(code) == 6 and code.isdigit()

        await service.reset_password(code, "NewPassw0rd")

        account = await _account(db_session, "alice@example.com")
        assert hasher.verify("NewPassw0rd", account.password_hash)
        assert account.password_reset_token is None
        assert account.password_reset_expires_at is None
        with pytest.raises(InvalidOrExpired):
            await service.reset_password(code, "OtherPassw0rd")
        await service.login("alice@example.com", "NewPassw0rd")
        with pytest.raises(Unauthorized):
            await service.login("alice@example.com", "Passw0rd")

    @pytest.mark.asyncio
    async def test_new_request_replaces_pending_code(self, service, dispatcher, notifier):
        await service.register("alice@example.com", "alice", "Passw0rd")
        await service.forgot_password("alice@example.com")
        await service.forgot_password("alice@example.com")
        await dispatcher.drain()
        first, second = notifier.tokens("password_reset")

        if first != second:
            with pytest.raises(InvalidOrExpired):
                await service.reset_password(first, "NewPassw0rd")
        await service.reset_password(second, "NewPassw0rd")

    @pytest.mark.asyncio
    async def test_reset_rejects_weak_password_first(self, service):
        with pytest.raises(ValidationFailed):
            await service.reset_password("123456", "weak")

    @pytest.mark.asyncio
    async def test_concurrent_resets_change_password_once(self, session_maker, make_service, dispatcher, notifier, hasher):
        async with session_maker() as session:
            svc = make_service(session)
            await svc.register("alice@example.com", "alice", "Passw0rd")
            await svc.forgot_password("alice@example.com")
            await session.commit()
        await dispatcher.drain()
        code = notifier.last_token("password_reset")

        async def attempt(new_password: str):
            async with session_maker() as session:
                try:
                    await make_service(session).reset_password(code, new_password)
                    await session.commit()
                    return new_password
                except InvalidOrExpired:
                    await session.rollback()
                    return None

        outcomes = await asyncio.gather(attempt("FirstPassw0rd"), attempt("SecondPassw0rd"))
        winners = [o for o in outcomes if o is not None]

        assert len(winners) == 1
        async with session_maker() as session:
            account = await _account(session, "alice@example.com")
            assert hasher.verify(winners[0], account.password_hash)

    @pytest.mark.asyncio
    async def test_strict_delivery_surfaces_failure(self, db_session, hasher, minter, codec):
        from quickquest.kernel.identity.credential_service import CredentialService, IdentitySettings

        failing = NotificationDispatcher(RecordingNotifier(fail=True))
        service = CredentialService(
            repository=SqlAlchemyAccountRepository(db_session),
            hasher=hasher,
            minter=minter,
            codec=codec,
            notifications=failing,
            settings=IdentitySettings(require_reset_delivery=True),
        )
        await service.register("alice@example.com", "alice", "Passw0rd")

        with pytest.raises(DeliveryFailed):
            await service.forgot_password("alice@example.com")
        # Unknown emails still get the generic answer
        assert await service.forgot_password("nobody@example.com") == FORGOT_PASSWORD_MESSAGE
        await failing.drain()

    @pytest.mark.asyncio
    async def test_best_effort_delivery_hides_failure(self, db_session, make_service, dispatcher, notifier):
        notifier.fail = True
        service = make_service(db_session)
        await service.register("alice@example.com", "alice", "Passw0rd")

        assert await service.forgot_password("alice@example.com") == FORGOT_PASSWORD_MESSAGE
        await dispatcher.drain()


class TestResendVerification:

    @pytest.mark.asyncio
    async def test_rotates_token(self, service, dispatcher, notifier):
        await service.register("alice@example.com", "alice", "Passw0rd")
        await service.resend_verification("alice@example.com")
        await dispatcher.drain()
        first, second = notifier.tokens("verification")

        with pytest.raises(InvalidOrExpired):
            await service.verify_email(first)
        await service.verify_email(second)

    @pytest.mark.asyncio
    async def test_unknown_and_verified(self, service, dispatcher, notifier):
        with pytest.raises(NotFound):
            await service.resend_verification("nobody@example.com")

        await service.register("alice@example.com", "alice", "Passw0rd")
        await dispatcher.drain()
        await service.verify_email(notifier.last_token("verification"))

        with pytest.raises(AlreadyVerified):
            await service.resend_verification("alice@example.com")


class TestScenario:

    @pytest.mark.asyncio
    async def test_register_login_recover(self, service, db_session, clock, dispatcher, notifier):
        registered = await service.register("a@x.com", "alice", "Passw0rd")
        assert registered.token

        assert (await service.login("a@x.com", "Passw0rd")).user.email == "a@x.com"
        with pytest.raises(Unauthorized):
            await service.login("a@x.com", "wrong")

        assert await service.forgot_password("unknown@x.com") == FORGOT_PASSWORD_MESSAGE
        await dispatcher.drain()
        assert notifier.tokens("password_reset") == []

        await service.forgot_password("a@x.com")
        await dispatcher.drain()
        stale = notifier.last_token("password_reset")
        clock.advance(timedelta(hours=3))  # expired two hours ago

        with pytest.raises(InvalidOrExpired):
            await service.reset_password(stale, "NewPassw0rd")
