"""
Credential lifecycle flows: registration, login, email verification and
password recovery.

Every flow validates input before touching the hasher or the repository.
Responses that could reveal whether an email is registered (login failures,
forgot-password) are identical for every internal cause.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError

from quickquest.kernel.identity.errors import (
    AlreadyVerified,
    Conflict,
    DeliveryFailed,
    Internal,
    InvalidOrExpired,
    InvalidSessionToken,
    NotFound,
    Unauthorized,
)
from quickquest.kernel.identity.jwt import SessionClaims, SessionTokenCodec
from quickquest.kernel.identity.password import PasswordHasher
from quickquest.kernel.identity.policy import (
    normalize_email,
    normalize_username,
    validate_password,
)
from quickquest.kernel.identity.repository import AccountRepository, UniquenessViolation
from quickquest.kernel.identity.tokens import (
    RESET_TOKEN_TTL,
    VERIFICATION_TOKEN_TTL,
    MintedToken,
    TokenMinter,
    TokenShape,
    digest_token,
)
from quickquest.kernel.identity.types import AuthResult, PublicUser
from quickquest.kernel.models.account import Account, AccountProvider
from quickquest.logging_config import get_logger
from quickquest.notifications.dispatcher import NotificationDispatcher
from quickquest.notifications.notifier import NotificationError

logger = get_logger(__name__)

REGISTER_MESSAGE = "Registration successful! Please check your email to verify your account."
LOGIN_MESSAGE = "Login successful"
VERIFY_EMAIL_MESSAGE = "Email verified successfully"
FORGOT_PASSWORD_MESSAGE = "If an account exists with this email, you will receive a password reset code."
RESET_PASSWORD_MESSAGE = "Password reset successful. You can now sign in with your new password."
RESEND_VERIFICATION_MESSAGE = "Verification email sent"

# Re-mint attempts when a fresh token's digest is already stored on another account
MAX_TOKEN_DRAWS = 5


@dataclass(frozen=True)
class IdentitySettings:
    """Configuration the credential flows need, fixed for the process."""

    verification_token_ttl: timedelta = VERIFICATION_TOKEN_TTL
    reset_token_ttl: timedelta = RESET_TOKEN_TTL
    require_reset_delivery: bool = False

    @classmethod
    def from_settings(cls, settings) -> "IdentitySettings":
        return cls(
            verification_token_ttl=timedelta(hours=settings.verification_token_ttl_hours),
            reset_token_ttl=timedelta(minutes=settings.reset_token_ttl_minutes),
            require_reset_delivery=settings.require_reset_delivery,
        )


@contextmanager
def _repository_errors(operation: str) -> Iterator[None]:
    """Turn storage failures into Internal, keeping the cause in the log only."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.exception("%s failed", operation)
        raise Internal() from e


def _normalize_token(token: str) -> str:
    """Both single-use token kinds are matched without surrounding whitespace."""
    return (token or "").strip()


class CredentialService:
    """
    Service for credential lifecycle operations.

    Built per unit of work around one repository; holds no mutable state of
    its own.
    """

    def __init__(
        self,
        repository: AccountRepository,
        hasher: PasswordHasher,
        minter: TokenMinter,
        codec: SessionTokenCodec,
        notifications: NotificationDispatcher,
        settings: IdentitySettings = IdentitySettings(),
    ):
        self.repository = repository
        self.hasher = hasher
        self.minter = minter
        self.codec = codec
        self.notifications = notifications
        self.settings = settings

    def issue_session(self, account: Account) -> AuthResult:
        """Sign a session token for ``account``."""
        return AuthResult(
            token=self.codec.issue(SessionClaims.for_account(account)),
            expires_in=self.codec.expires_in,
            user=PublicUser.model_validate(account),
        )

    async def register(self, email: str, username: str, password: str) -> AuthResult:
        """
        Register a local account.

        Args:
            email: Email address, stored lowercase
            username: Username, stored lowercase
            password: Plain text password

        Returns:
            AuthResult for the new, unverified account

        Raises:
            ValidationFailed: a policy rejected the input
            Conflict: email or username already taken
        """
        email = normalize_email(email)
        username = normalize_username(username)
        validate_password(password)

        with _repository_errors("Registration"):
            if await self.repository.find_by_email(email) is not None:
                raise Conflict("Email already registered")
            if await self.repository.find_by_username(username) is not None:
                raise Conflict("Username already taken")

            password_hash = await self.hasher.hash_async(password)

            for _ in range(MAX_TOKEN_DRAWS):
                minted = self.minter.issue(self.settings.verification_token_ttl, TokenShape.OPAQUE)
                try:
                    account = await self.repository.create(
                        email=email,
                        username=username,
                        password_hash=password_hash,
                        provider=AccountProvider.LOCAL.value,
                        is_verified=False,
                        email_verification_token=minted.digest,
                        email_verification_expires_at=minted.expires_at,
                    )
                    break
                except UniquenessViolation as e:
                    # Lost a race with a concurrent registration
                    if e.field == "email":
                        raise Conflict("Email already registered") from e
                    if e.field == "username":
                        raise Conflict("Username already taken") from e
                    if e.field != "email_verification_token":
                        raise Conflict() from e
            else:
                raise Internal()

        logger.info("Account registered", extra={"account_id": str(account.id)})
        self.notifications.verification(account.email, minted.token, account.username)
        return self.issue_session(account)

    async def login(self, email: str, password: str) -> AuthResult:
        """
        Authenticate with email and password.

        Raises:
            Unauthorized: unknown email, OAuth-only account or wrong password,
                indistinguishable from each other
        """
        with _repository_errors("Login"):
            account = await self.repository.find_by_email(email.strip().lower())

            if account is None or not account.has_password:
                await self.hasher.burn_verify_async(password)
                raise Unauthorized()

            if not await self.hasher.verify_async(password, account.password_hash):
                raise Unauthorized()

        if self.hasher.needs_rehash(account.password_hash):
            await self._rehash(account, password)

        return self.issue_session(account)

    async def _rehash(self, account: Account, password: str) -> None:
        new_hash = await self.hasher.hash_async(password)
        try:
            await self.repository.update(account.id, password_hash=new_hash)
        except SQLAlchemyError:
            # The old hash still verifies; try again on the next login
            logger.warning("Password rehash failed", extra={"account_id": str(account.id)}, exc_info=True)
            return
        logger.info("Password rehashed at current cost", extra={"account_id": str(account.id)})

    async def get_me(self, session_token: str) -> PublicUser:
        """
        Public projection of the account a session token was issued for.

        Raises:
            InvalidSessionToken: bad token, or the account no longer exists
        """
        claims = self.codec.parse(session_token)
        with _repository_errors("Account lookup"):
            account = await self.repository.get_by_id(claims.account_id)
        if account is None:
            raise InvalidSessionToken()
        return PublicUser.model_validate(account)

    async def verify_email(self, token: str) -> Account:
        """
        Consume a verification token and mark its account verified.

        Raises:
            InvalidOrExpired: unknown, already used or expired token
        """
        token = _normalize_token(token)
        if not token:
            raise InvalidOrExpired()

        with _repository_errors("Email verification"):
            account = await self.repository.consume_verification_token(
                digest_token(token),
                self.minter.now(),
            )
        if account is None:
            raise InvalidOrExpired()

        logger.info("Email verified", extra={"account_id": str(account.id)})
        self.notifications.welcome(account.email, account.username)
        return account

    async def forgot_password(self, email: str) -> str:
        """
        Start password recovery.

        Returns the same message whether or not the account exists. Accounts
        without a password (OAuth-only) are left untouched.

        Raises:
            DeliveryFailed: only when reset delivery is required and the
                email could not be sent
        """
        with _repository_errors("Password reset request"):
            account = await self.repository.find_by_email(email.strip().lower())
            if account is None or not account.has_password:
                return FORGOT_PASSWORD_MESSAGE

            minted = await self._rotate_token(
                account,
                self.settings.reset_token_ttl,
                TokenShape.NUMERIC_CODE,
                token_field="password_reset_token",
                expiry_field="password_reset_expires_at",
            )

        if self.settings.require_reset_delivery:
            try:
                await self.notifications.deliver_password_reset(account.email, minted.token, account.username)
            except NotificationError as e:
                logger.error("Password reset email failed", extra={"account_id": str(account.id)})
                raise DeliveryFailed() from e
        else:
            self.notifications.password_reset(account.email, minted.token, account.username)

        logger.info("Password reset requested", extra={"account_id": str(account.id)})
        return FORGOT_PASSWORD_MESSAGE

    async def reset_password(self, token: str, new_password: str) -> Account:
        """
        Consume a reset code and replace the account password.

        Raises:
            ValidationFailed: new password fails policy
            InvalidOrExpired: unknown, already used or expired code
        """
        validate_password(new_password)
        token = _normalize_token(token)
        if not token:
            raise InvalidOrExpired()

        password_hash = await self.hasher.hash_async(new_password)
        with _repository_errors("Password reset"):
            account = await self.repository.consume_reset_token(
                digest_token(token),
                self.minter.now(),
                password_hash,
            )
        if account is None:
            raise InvalidOrExpired()

        logger.info("Password reset", extra={"account_id": str(account.id)})
        return account

    async def resend_verification(self, email: str) -> None:
        """
        Issue a fresh verification token, replacing any pending one.

        Raises:
            NotFound: no account with that email
            AlreadyVerified: nothing left to verify
        """
        with _repository_errors("Verification resend"):
            account = await self.repository.find_by_email(email.strip().lower())
            if account is None:
                raise NotFound()
            if account.is_verified:
                raise AlreadyVerified()

            minted = await self._rotate_token(
                account,
                self.settings.verification_token_ttl,
                TokenShape.OPAQUE,
                token_field="email_verification_token",
                expiry_field="email_verification_expires_at",
            )

        self.notifications.verification(account.email, minted.token, account.username)

    async def _rotate_token(
        self,
        account: Account,
        ttl: timedelta,
        shape: TokenShape,
        *,
        token_field: str,
        expiry_field: str,
    ) -> MintedToken:
        """Store the digest of a fresh token on ``account``, overwriting the previous one."""
        for _ in range(MAX_TOKEN_DRAWS):
            minted = self.minter.issue(ttl, shape)
            try:
                await self.repository.update(
                    account.id,
                    **{token_field: minted.digest, expiry_field: minted.expires_at},
                )
            except UniquenessViolation:
                # Six-digit codes can collide with another account's pending code
                continue
            return minted
        raise Internal()
