"""
Tests for anime registration (AniList sync and Auto-Register entry points).
"""

from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.anime import AnimeStatus
from app.models.user import User
from app.schemas.episode import AnimeInfo
from app.services.anime_service import (
    AnimeFinishedError,
    AnimeNotFoundError,
    AnimeRegistrationError,
    build_anime_service,
)
from app.services.anime_store import AnimeStore


@pytest.fixture
def store(db: AsyncSession) -> AnimeStore:
    return AnimeStore(db)


@pytest.fixture
def service(store, fake_consumet):
    return build_anime_service(store, fake_consumet)


@pytest_asyncio.fixture
async def user(db: AsyncSession) -> User:
    user = User(username="fern", anilist_id="42")
    db.add(user)
    await db.commit()
    return user


def releasing(anime_id: str, title: str = "New Show") -> AnimeInfo:
    return AnimeInfo(id=anime_id, title=title, status=AnimeStatus.RELEASING, total_episodes=12)


# ========================================
# add_anime
# ========================================

@pytest.mark.asyncio
async def test_add_anime_seeds_existing_episodes(service, store, fake_consumet, episode_payload, user):
    fake_consumet.info = {"7": releasing("7")}
    fake_consumet.episodes = {("gogoanime", False): [episode_payload(1), episode_payload(2)]}

    anime = await service.add_anime("7", user_id=user.id)

    assert anime.id == "7"
    assert anime.title == "New Show"
    assert await store.count_episodes("7", dub=False) == 2
    assert await store.subscribed_anime_ids(user.id) == {"7"}


@pytest.mark.asyncio
async def test_add_anime_not_found(service):
    with pytest.raises(AnimeNotFoundError, match="Anime not found"):
        await service.add_anime("404")


@pytest.mark.asyncio
async def test_add_anime_finished(service, store, fake_consumet):
    fake_consumet.info = {"9": AnimeInfo(id="9", title="Old", status=AnimeStatus.FINISHED, total_episodes=1)}

    with pytest.raises(AnimeFinishedError, match="Anime is finished"):
        await service.add_anime("9")

    assert not await store.anime_exists("9")


@pytest.mark.asyncio
async def test_add_anime_storage_failure(service, store, fake_consumet):
    fake_consumet.info = {"7": releasing("7")}
    error = OperationalError("INSERT", {}, Exception("disk full"))

    with patch.object(store, "create_anime", AsyncMock(side_effect=error)):
        with pytest.raises(AnimeRegistrationError, match="Failed to store anime"):
            await service.add_anime("7")


# ========================================
# add_anime_to_user
# ========================================

@pytest.mark.asyncio
async def test_add_anime_to_user_existing_anime(service, store, fake_consumet, releasing_anime, user):
    assert await service.add_anime_to_user(releasing_anime.id, user.id) is True
    assert await service.add_anime_to_user(releasing_anime.id, user.id) is False
    # Already tracked: no upstream lookup
    assert fake_consumet.info_calls == []


@pytest.mark.asyncio
async def test_add_anime_to_user_registers_untracked(service, store, fake_consumet, user):
    fake_consumet.info = {"7": releasing("7")}

    assert await service.add_anime_to_user("7", user.id) is True
    assert await store.subscribed_anime_ids(user.id) == {"7"}


# ========================================
# register_airing
# ========================================

@pytest.mark.asyncio
async def test_register_airing_counts_failures_by_reason(service, store, fake_consumet, releasing_anime):
    fake_consumet.info = {
        "1": releasing("1"),
        "2": releasing("2"),
        "3": AnimeInfo(id="3", status=AnimeStatus.FINISHED),
    }
    anilist = AsyncMock()
    anilist.fetch_airing_anime = AsyncMock(return_value=["1", "2", "3", "4", releasing_anime.id])

    summary = await service.register_airing(anilist, days_ahead=2)

    anilist.fetch_airing_anime.assert_awaited_once_with(2)
    assert summary.found == 5
    assert summary.queued == 4
    assert summary.added == 2
    assert summary.failures == {"Anime is finished": 1, "Anime not found": 1}
    assert summary.failed == 2
    assert summary.as_dict()["failed"] == 2
    assert await store.anime_exists("1")
    assert await store.anime_exists("2")


@pytest.mark.asyncio
async def test_register_airing_unexpected_error_is_counted(service, fake_consumet):
    fake_consumet.info = {"1": releasing("1")}
    anilist = AsyncMock()
    anilist.fetch_airing_anime = AsyncMock(return_value=["1"])

    with patch.object(service.reconciler, "seed", AsyncMock(side_effect=RuntimeError("boom"))), \
         patch("app.services.anime_service.report_exception") as mock_report:
        summary = await service.register_airing(anilist, days_ahead=1)

    assert summary.added == 0
    assert summary.failures == {"RuntimeError": 1}
    mock_report.assert_called_once()


@pytest.mark.asyncio
async def test_register_airing_nothing_airing(service):
    anilist = AsyncMock()
    anilist.fetch_airing_anime = AsyncMock(return_value=[])

    summary = await service.register_airing(anilist, days_ahead=2)

    assert summary.as_dict() == {"found": 0, "queued": 0, "added": 0, "failed": 0, "failures": {}}
