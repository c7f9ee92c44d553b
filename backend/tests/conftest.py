"""
Pytest configuration and fixtures.

This file is automatically discovered by pytest and provides
shared fixtures for all test modules.

Tests run against an in-memory SQLite database (aiosqlite), created fresh
for every test. No Redis, Consumet or AniList instance is needed: HTTP is
served by httpx.MockTransport and Redis is mocked where a job takes a lock.

References:
-----------
- Pytest Fixtures: https://docs.pytest.org/en/stable/fixture.html
- httpx MockTransport: https://www.python-httpx.org/advanced/transports/#mock-transports
"""

import os

# Must be set before anything imports app.core.config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["APP_ENV"] = "staging"
os.environ["SENTRY_DSN"] = ""
os.environ["LOG_FORMAT"] = "text"

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Dict, List

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.models import Anime, AnimeStatus, Episode, User, user_animes
from app.schemas.consumet import provider_episodes_adapter
from app.services.settings_store import SchedulerConfig


# ================================
# Database Fixtures
# ================================

@pytest_asyncio.fixture
async def test_engine():
    """
    Create a test database engine.

    StaticPool keeps the single in-memory connection alive for the whole
    test, so every session sees the same tables.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,  # Set to True for SQL debugging
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Database session for one test.

    Services commit on their own, so there is no outer transaction to roll
    back: the whole database is thrown away with the engine instead.
    """
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session


# ================================
# Data Fixtures
# ================================

@pytest_asyncio.fixture
async def releasing_anime(db: AsyncSession) -> Anime:
    """A RELEASING anime with 12 announced episodes and nothing stored yet."""
    anime = Anime(
        id="154587",
        title="Frieren",
        status=AnimeStatus.RELEASING,
        total_episodes=12,
    )
    db.add(anime)
    await db.commit()
    return anime


@pytest_asyncio.fixture
async def subscriber(db: AsyncSession, releasing_anime: Anime) -> User:
    """A user with both delivery channels, subscribed to `releasing_anime`."""
    user = User(
        username="himmel",
        discord_webhook="https://discord.test/api/webhooks/1/abc",
        ntfy_url="https://ntfy.test/frieren",
    )
    db.add(user)
    await db.flush()
    await db.execute(insert(user_animes).values(user_id=user.id, anime_id=releasing_anime.id))
    await db.commit()
    return user


@pytest.fixture
def add_episode(db: AsyncSession) -> Callable:
    """Factory that stores an episode directly, bypassing the store."""

    async def _add(
        anime_id: str,
        number: int,
        dub: bool = False,
        providers: str = "gogoanime",
        released_at: datetime | None = None,
        **extra,
    ) -> Episode:
        episode = Episode(
            anime_id=anime_id,
            number=number,
            dub=dub,
            providers=providers,
            released_at=released_at or datetime.now(timezone.utc) - timedelta(days=1),
            **extra,
        )
        db.add(episode)
        await db.commit()
        return episode

    return _add


@pytest.fixture
def scheduler_config() -> SchedulerConfig:
    """The default scheduling policy."""
    return SchedulerConfig.defaults()


# ================================
# Upstream Fixtures
# ================================

def provider_episode(number: int, **extra) -> Dict:
    """One Consumet episode entry as the API returns it."""
    payload = {
        "id": f"ep-{number}",
        "number": number,
        "title": f"Episode {number}",
        "description": f"Synopsis {number}",
        "image": f"https://img.test/{number}.jpg",
        "createdAt": "2026-10-10T12:00:00.000Z",
    }
    payload.update(extra)
    return payload


class FakeConsumet:
    """
    In-memory stand-in for the Consumet client.

    `episodes` maps (provider, dub) to the list the provider returns;
    `info` maps anime id to the AnimeInfo returned by fetch_anime_info.
    """

    def __init__(self, episodes: Dict | None = None, info: Dict | None = None, failing: List[str] | None = None):
        self.episodes = episodes or {}
        self.info = info or {}
        self.failing = set(failing or [])
        self.episode_calls: List[tuple] = []
        self.info_calls: List[str] = []

    async def fetch_episodes(self, anime_id, dub, provider):
        self.episode_calls.append((anime_id, dub, provider))
        if provider in self.failing:
            raise RuntimeError(f"{provider} exploded")
        return provider_episodes_adapter.validate_python(self.episodes.get((provider, dub), []))

    async def fetch_anime_info(self, anime_id, title_type="english"):
        self.info_calls.append(anime_id)
        return self.info.get(anime_id)


@pytest.fixture
def fake_consumet() -> FakeConsumet:
    return FakeConsumet()


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an httpx.AsyncClient whose requests are answered by `handler`."""

    def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _client


@pytest.fixture
def episode_payload() -> Callable[..., Dict]:
    return provider_episode
