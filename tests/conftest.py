import os

# Configuration must exist before vibecode modules are imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET"] = "test-secret-that-is-long-enough-for-hs256"
os.environ["FRONTEND_ORIGIN"] = "http://localhost:3000"
os.environ["ADMIN_USERNAMES"] = "root"
os.environ["LOG_LEVEL"] = "WARNING"

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from vibecode.auth import generate_token
from vibecode.database import get_db_async
from vibecode.main import app
from vibecode.models import Base, Follow, User, Vibe


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest_asyncio.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_async] = _get_db
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    """Factory: inserts a user and returns it (password login not possible)."""

    async def _make(username: Optional[str] = None, **fields) -> User:
        username = username or f"user_{uuid.uuid4().hex[:8]}"
        async with session_factory() as session:
            user = User(
                username=username,
                password_hash="!",
                display_name=fields.pop("display_name", username.title()),
                **fields,
            )
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest.fixture
def make_vibe(session_factory):
    async def _make(user: User, vibe_date: Optional[date] = None, created_at: Optional[datetime] = None, **fields) -> Vibe:
        now = datetime.now(timezone.utc)
        async with session_factory() as session:
            vibe = Vibe(
                user_id=user.id,
                image_url=fields.pop("image_url", "https://cdn.example.com/vibes/x.jpg"),
                image_key=fields.pop("image_key", "vibes/x.jpg"),
                vibe_date=vibe_date or now.date(),
                created_at=created_at or now,
                **fields,
            )
            session.add(vibe)
            await session.commit()
            return vibe

    return _make


@pytest.fixture
def make_follow(session_factory):
    async def _make(follower: User, following: User) -> None:
        async with session_factory() as session:
            session.add(Follow(follower_id=follower.id, following_id=following.id))
            await session.commit()

    return _make


def auth_headers(user: User, token_type: str = "access", ttl: Optional[int] = None) -> dict:
    return {"Authorization": f"Bearer {generate_token(user.id, user.username, token_type, ttl)}"}


def days_ago(n: int) -> date:
    return datetime.now(timezone.utc).date() - timedelta(days=n)


class RacingSession:
    """Wraps an AsyncSession and runs ``competitor`` right after the Nth ``scalar`` lookup.

    The lookup result is returned unchanged, so the caller acts on a read that
    a concurrent writer has already made stale.
    """

    def __init__(self, session, competitor, after_lookup: int = 1):
        self._session = session
        self._competitor = competitor
        self._after_lookup = after_lookup
        self._lookups = 0

    def __getattr__(self, name):
        return getattr(self._session, name)

    async def scalar(self, statement, *args, **kwargs):
        result = await self._session.scalar(statement, *args, **kwargs)
        self._lookups += 1
        if self._lookups == self._after_lookup:
            await self._competitor()
        return result


@pytest.fixture
def race_db(session_factory):
    """Routes the next requests through a RacingSession."""

    def _install(competitor, after_lookup: int = 1):
        async def _get_db():
            async with session_factory() as session:
                yield RacingSession(session, competitor, after_lookup)

        app.dependency_overrides[get_db_async] = _get_db

    return _install
