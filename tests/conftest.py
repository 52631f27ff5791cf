import os

# Settings are read at import time, configure the test environment first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_STORAGE_URI"] = "memory://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["SITE_URL"] = "https://linkhub.test"
os.environ["DEBUG"] = "false"

from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from uuid import uuid4

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import linkhub.api.redirect
from linkhub.core.database import Base, get_async_session
from linkhub.core.deps import AUTH_COOKIE_NAME
from linkhub.core.rate_limit import RateLimitDecision, RateLimiters
from linkhub.core.security import create_access_token
from linkhub.main import app
from linkhub.models import Profile

DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@dataclass
class FakeRateLimiter:
    """Allows the first ``allow`` checks of each key, then denies."""

    allow: int = 1000
    limit: int = 1000
    calls: list[str] = field(default_factory=list)

    def check(self, key: str) -> RateLimitDecision:
        self.calls.append(key)
        used = self.calls.count(key)
        allowed = used <= self.allow
        return RateLimitDecision(
            allowed=allowed,
            limit=self.limit,
            remaining=max(self.limit - used, 0),
            reset_time=1_900_000_000.4,
        )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def rate_limiters():
    limiters = RateLimiters(
        redirect=FakeRateLimiter(),
        create_link=FakeRateLimiter(),
        qr_code=FakeRateLimiter(),
    )
    original = app.state.rate_limiters
    app.state.rate_limiters = limiters
    yield limiters
    app.state.rate_limiters = original


@pytest.fixture
def published_events(monkeypatch):
    events: list[tuple[str, dict]] = []

    async def fake_publish(channel: str, event_data: dict) -> None:
        events.append((channel, event_data))

    monkeypatch.setattr(linkhub.api.redirect, "publish_event", fake_publish)
    return events


@pytest.fixture
async def client(session_factory, rate_limiters, published_events) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def override_get_async_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_session] = override_get_async_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def profile(db_session: AsyncSession) -> Profile:
    suffix = uuid4().hex[:8]
    profile = Profile(email=f"owner-{suffix}@example.com", username=f"owner-{suffix}")
    db_session.add(profile)
    await db_session.commit()
    return profile


@pytest.fixture
def auth_client(client: httpx.AsyncClient, profile: Profile) -> httpx.AsyncClient:
    client.cookies.set(AUTH_COOKIE_NAME, create_access_token(profile.id, profile.email))
    return client
