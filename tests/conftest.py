"""Shared fixtures: a throwaway sqlite database per test, a recording mailer,
a controllable clock and an httpx client wired to the app."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-for-gallery-accounts-0123456789")

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from argon2 import PasswordHasher
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from gallery_accounts.core import security
from gallery_accounts.core.security import create_access_token
from gallery_accounts.db import get_session
from gallery_accounts.deps.accounts import get_mailer, get_rate_limiter
from gallery_accounts.main import app
from gallery_accounts.models import Base
from gallery_accounts.services.coordinator import AccountCoordinator
from gallery_accounts.services.users import UserStore

TEST_PASSWORD = "correct-horse-battery"


class RecordingMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    async def _record(self, kind, **kwargs):
        if self.fail:
            raise ConnectionError("smtp unavailable")
        self.sent.append((kind, kwargs))

    async def send_password_reset(self, **kwargs):
        await self._record("password_reset", **kwargs)

    async def send_confirmation(self, **kwargs):
        await self._record("confirmation", **kwargs)

    async def send_email_change_confirmation(self, **kwargs):
        await self._record("email_change_confirmation", **kwargs)

    async def send_email_change_notice(self, **kwargs):
        await self._record("email_change_notice", **kwargs)

    def of_kind(self, kind):
        return [kwargs for k, kwargs in self.sent if k == kind]


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


class AllowAllLimiter:
    def __init__(self):
        self.keys = []
        self.blocked = set()

    async def allow(self, key):
        self.keys.append(key)
        return key not in self.blocked


def fake_urls(route_name, username, token):
    return f"https://gallery.example/{route_name}/{username}/{token}"


@pytest.fixture(autouse=True)
def cheap_password_hashing(monkeypatch):
    monkeypatch.setattr(security, "ph", PasswordHasher(time_cost=1, memory_cost=8, parallelism=1))


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'accounts.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def limiter():
    return AllowAllLimiter()


@pytest.fixture
def store(session, clock):
    return UserStore(session, clock=clock)


@pytest.fixture
def coordinator(store, mailer):
    return AccountCoordinator(store, mailer, fake_urls)


async def make_user(store, username, email, *, confirmed=True, password=TEST_PASSWORD):
    user = await store.create_user(username, email, password)
    if confirmed:
        assert await store.consume_confirmation_token(user, user.email_confirmation_token)
    return user


def auth_headers(user):
    token = create_access_token(str(user.user_id), extra={"tv": int(user.token_version or 0)})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(session_factory, mailer, limiter):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
