"""
Pytest fixtures for the identity service tests.

All tests share one temp-file SQLite database (aiosqlite); tables are
created before and dropped after every test that touches it.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List, Optional, Tuple

# Configure the app before anything imports quickquest.config
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
TEST_DB_PATH = _tmp.name
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
TEST_SECRET_KEY = "test-secret-key-for-testing-only-0123456789"

os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["SECRET_KEY"] = TEST_SECRET_KEY
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RESEND_API_KEY"] = ""
os.environ["FRONTEND_URL"] = "http://frontend.test"

from quickquest.config import get_settings  # noqa: E402

get_settings.cache_clear()

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402

from quickquest.database import create_engine_from_url, create_session_maker  # noqa: E402
from quickquest.kernel.identity.credential_service import CredentialService, IdentitySettings  # noqa: E402
from quickquest.kernel.identity.jwt import SessionTokenCodec  # noqa: E402
from quickquest.kernel.identity.password import PasswordHasher  # noqa: E402
from quickquest.kernel.identity.repository import SqlAlchemyAccountRepository  # noqa: E402
from quickquest.kernel.identity.tokens import TokenMinter  # noqa: E402
from quickquest.kernel.models import Base  # noqa: E402
from quickquest.notifications.dispatcher import NotificationDispatcher  # noqa: E402
from quickquest.notifications.notifier import NotificationError, Notifier  # noqa: E402


class RecordingNotifier(Notifier):
    """Notifier that keeps every message in memory."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Tuple[str, str, str]] = []  # (kind, email, token or "")

    async def _record(self, kind: str, email: str, token: str = "") -> None:
        if self.fail:
            raise NotificationError("simulated delivery failure")
        self.sent.append((kind, email, token))

    async def send_verification(self, email: str, token: str, username: str) -> None:
        await self._record("verification", email, token)

    async def send_password_reset(self, email: str, token: str, username: str) -> None:
        await self._record("password_reset", email, token)

    async def send_welcome(self, email: str, username: str) -> None:
        await self._record("welcome", email)

    def tokens(self, kind: str) -> List[str]:
        return [token for k, _, token in self.sent if k == kind]

    def last_token(self, kind: str) -> str:
        return self.tokens(kind)[-1]


class FakeClock:
    """Settable UTC clock, starting at the real current time."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current += delta


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Engine on the temp-file database with fresh tables."""
    engine = create_engine_from_url(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(db_engine)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def codec(clock: FakeClock) -> SessionTokenCodec:
    return SessionTokenCodec(secret_key=TEST_SECRET_KEY, clock=clock)


@pytest.fixture
def minter(clock: FakeClock) -> TokenMinter:
    return TokenMinter(clock=clock)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def dispatcher(notifier: RecordingNotifier) -> AsyncGenerator[NotificationDispatcher, None]:
    dispatcher = NotificationDispatcher(notifier, timeout=5.0)
    yield dispatcher
    await dispatcher.drain(timeout=5.0)


@pytest.fixture
def make_service(hasher, minter, codec, dispatcher):
    """Build a CredentialService over a given session."""

    def _make(session: AsyncSession, **settings) -> CredentialService:
        return CredentialService(
            repository=SqlAlchemyAccountRepository(session),
            hasher=hasher,
            minter=minter,
            codec=codec,
            notifications=dispatcher,
            settings=IdentitySettings(**settings),
        )

    return _make


@pytest.fixture
def service(db_session: AsyncSession, make_service) -> CredentialService:
    return make_service(db_session)
