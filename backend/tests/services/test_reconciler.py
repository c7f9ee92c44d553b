"""
Tests for episode reconciliation.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.anime import AnimeStatus, Episode
from app.schemas.episode import AnimeSnapshot, DiscoveredEpisode, EpisodeKey
from app.services.anime_store import AnimeStore
from app.services.reconciler import EpisodeReconciler, collapse_discoveries


# ========================================
# Fixtures
# ========================================

@pytest.fixture
def snapshot(releasing_anime) -> AnimeSnapshot:
    return AnimeSnapshot.capture(releasing_anime, with_episodes=False)


@pytest.fixture
def status_updater():
    updater = AsyncMock()
    updater.refresh_status = AsyncMock(return_value={})
    return updater


@pytest.fixture
def reconciler(db: AsyncSession, fake_consumet, status_updater) -> EpisodeReconciler:
    return EpisodeReconciler(
        AnimeStore(db),
        fake_consumet,
        status_updater,
        providers=["gogoanime", "zoro"],
    )


async def stored_episodes(db: AsyncSession, anime_id: str):
    result = await db.execute(
        select(Episode).where(Episode.anime_id == anime_id).order_by(Episode.dub, Episode.number)
    )
    return list(result.scalars().all())


# ========================================
# collapse_discoveries
# ========================================

def test_collapse_discoveries_merges_providers():
    first = DiscoveredEpisode(anime_id="1", number=3, dub=False, providers=["gogoanime"], title="First")
    second = DiscoveredEpisode(anime_id="1", number=3, dub=False, providers=["zoro"], title="Second")
    dub = DiscoveredEpisode(anime_id="1", number=3, dub=True, providers=["zoro"])

    collapsed = collapse_discoveries([first, second, dub])

    assert len(collapsed) == 2
    assert collapsed[0].providers == ["gogoanime", "zoro"]
    assert collapsed[0].title == "First"
    assert collapsed[1].key == EpisodeKey(3, True)
    # Inputs are not mutated
    assert first.providers == ["gogoanime"]


# ========================================
# reconcile
# ========================================

@pytest.mark.asyncio
async def test_reconcile_stores_new_episodes(db, reconciler, fake_consumet, snapshot, episode_payload):
    fake_consumet.episodes = {
        ("gogoanime", False): [episode_payload(1), episode_payload(2)],
        ("gogoanime", True): [episode_payload(1)],
    }

    new_episodes = await reconciler.reconcile(snapshot, [])

    assert [(ep.number, ep.dub) for ep in new_episodes] == [(1, False), (2, False), (1, True)]
    assert new_episodes[0].providers == ["gogoanime"]
    assert new_episodes[0].title == "Episode 1"

    stored = await stored_episodes(db, snapshot.id)
    assert [(ep.number, ep.dub, ep.providers) for ep in stored] == [
        (1, False, "gogoanime"),
        (2, False, "gogoanime"),
        (1, True, "gogoanime"),
    ]
    assert stored[0].released_at == datetime(2026, 10, 10, 12, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_reconcile_skips_known_episodes(db, reconciler, fake_consumet, snapshot, episode_payload, add_episode):
    await add_episode(snapshot.id, 1)
    fake_consumet.episodes = {("gogoanime", False): [episode_payload(1), episode_payload(2)]}

    new_episodes = await reconciler.reconcile(snapshot, [EpisodeKey(1, False)])

    assert [ep.number for ep in new_episodes] == [2]


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(db, reconciler, fake_consumet, snapshot, episode_payload):
    fake_consumet.episodes = {("gogoanime", False): [episode_payload(1)]}

    first = await reconciler.reconcile(snapshot, [])
    # An overlapping run still holding the old episode list
    second = await reconciler.reconcile(snapshot, [])

    assert len(first) == 1
    assert second == []
    assert len(await stored_episodes(db, snapshot.id)) == 1


@pytest.mark.asyncio
async def test_second_provider_is_merged(db, reconciler, fake_consumet, snapshot, episode_payload):
    fake_consumet.episodes = {
        ("gogoanime", False): [episode_payload(5)],
        ("zoro", False): [episode_payload(5, title="Other title", description="Other synopsis")],
    }

    new_episodes = await reconciler.reconcile(snapshot, [])

    assert len(new_episodes) == 1
    assert new_episodes[0].providers == ["gogoanime", "zoro"]
    assert new_episodes[0].providers_label == "Gogoanime, Zoro"

    stored = await stored_episodes(db, snapshot.id)
    assert len(stored) == 1
    assert stored[0].providers == "gogoanime,zoro"
    # First reporter's metadata wins
    assert stored[0].title == "Episode 5"
    assert stored[0].description == "Synopsis 5"


@pytest.mark.asyncio
async def test_provider_listing_known_episode_later(db, reconciler, fake_consumet, snapshot, episode_payload, add_episode):
    await add_episode(snapshot.id, 1, providers="gogoanime")
    fake_consumet.episodes = {("zoro", False): [episode_payload(1)]}

    # Known episodes are never re-announced, but the new provider is recorded
    assert await reconciler.reconcile(snapshot, [EpisodeKey(1, False)]) == []

    stored = await stored_episodes(db, snapshot.id)
    assert [(ep.number, ep.providers) for ep in stored] == [(1, "gogoanime,zoro")]


@pytest.mark.asyncio
async def test_failing_provider_does_not_stop_others(db, reconciler, fake_consumet, snapshot, episode_payload):
    fake_consumet.failing = ["gogoanime"]
    fake_consumet.episodes = {("zoro", True): [episode_payload(1)]}

    with patch("app.services.reconciler.report_exception") as mock_report:
        new_episodes = await reconciler.reconcile(snapshot, [])

    assert [(ep.number, ep.dub, ep.providers) for ep in new_episodes] == [(1, True, ["zoro"])]
    mock_report.assert_called_once()
    assert mock_report.call_args.kwargs["provider"] == "gogoanime"


@pytest.mark.asyncio
async def test_conflicting_insert_is_reported_not_notified(db, reconciler, fake_consumet, snapshot, episode_payload, add_episode):
    await add_episode(snapshot.id, 1)
    fake_consumet.episodes = {("gogoanime", False): [episode_payload(1), episode_payload(2)]}

    # Another job stored episode 1 between our lookup and our insert
    original_find = reconciler.store.find_episode

    async def racing_find(anime_id, number, dub):
        if number == 1:
            return None
        return await original_find(anime_id, number, dub)

    with patch.object(reconciler.store, "find_episode", side_effect=racing_find), \
         patch("app.services.reconciler.report_exception") as mock_report:
        new_episodes = await reconciler.reconcile(snapshot, [])

    assert [ep.number for ep in new_episodes] == [2]
    mock_report.assert_called_once()


@pytest.mark.asyncio
async def test_missing_release_date_defaults_to_now(db, reconciler, fake_consumet, snapshot, episode_payload):
    fake_consumet.episodes = {("gogoanime", False): [episode_payload(1, createdAt=None)]}
    before = datetime.now(timezone.utc)

    await reconciler.reconcile(snapshot, [])

    stored = await stored_episodes(db, snapshot.id)
    assert stored[0].released_at >= before.replace(microsecond=0)


# ========================================
# Completion check
# ========================================

@pytest.mark.asyncio
async def test_completed_anime_triggers_status_refresh(reconciler, fake_consumet, status_updater, snapshot, episode_payload):
    known = [EpisodeKey(n, False) for n in range(1, 12)] + [EpisodeKey(n, True) for n in range(1, 13)]
    fake_consumet.episodes = {("gogoanime", False): [episode_payload(12)]}

    new_episodes = await reconciler.reconcile(snapshot, known)

    assert [ep.number for ep in new_episodes] == [12]
    status_updater.refresh_status.assert_awaited_once_with(snapshot)


@pytest.mark.asyncio
async def test_fully_stored_anime_refreshes_on_next_pass(reconciler, status_updater, snapshot):
    known = [EpisodeKey(n, dub) for n in range(1, 13) for dub in (False, True)]

    assert await reconciler.reconcile(snapshot, known) == []

    status_updater.refresh_status.assert_awaited_once_with(snapshot)


@pytest.mark.asyncio
async def test_sub_complete_dub_missing_does_not_refresh(reconciler, fake_consumet, status_updater, snapshot, episode_payload):
    known = [EpisodeKey(n, False) for n in range(1, 12)]
    fake_consumet.episodes = {("gogoanime", False): [episode_payload(12)]}

    await reconciler.reconcile(snapshot, known)

    status_updater.refresh_status.assert_not_awaited()


@pytest.mark.asyncio
async def test_status_refresh_failure_is_reported(reconciler, status_updater):
    status_updater.refresh_status.side_effect = RuntimeError("upstream down")
    unknown_total = AnimeSnapshot(id="1", status=AnimeStatus.RELEASING, total_episodes=0)

    with patch("app.services.reconciler.report_exception") as mock_report:
        assert await reconciler.reconcile(unknown_total, []) == []

    mock_report.assert_called_once()


def _discovered(number, dub=False):
    return DiscoveredEpisode(anime_id="1", number=number, dub=dub, providers=["gogoanime"])


@pytest.mark.parametrize("status,total,known,new,expected", [
    # Unknown total: every check refreshes
    (AnimeStatus.RELEASING, 0, [], [], True),
    (AnimeStatus.RELEASING, 2, [EpisodeKey(1, False), EpisodeKey(1, True)], [_discovered(2), _discovered(2, True)], True),
    (AnimeStatus.RELEASING, 2, [EpisodeKey(1, False), EpisodeKey(2, False)], [], False),
    (AnimeStatus.NOT_YET_RELEASED, 12, [], [_discovered(1), _discovered(2)], True),
    (AnimeStatus.NOT_YET_RELEASED, 12, [], [_discovered(1)], False),
])
def test_needs_status_refresh(status, total, known, new, expected):
    anime = AnimeSnapshot(id="1", status=status, total_episodes=total)

    assert EpisodeReconciler.needs_status_refresh(anime, known, new) is expected


# ========================================
# seed
# ========================================

@pytest.mark.asyncio
async def test_seed_stores_without_refresh(db, reconciler, fake_consumet, status_updater, snapshot, episode_payload):
    fake_consumet.episodes = {
        ("gogoanime", False): [episode_payload(1), episode_payload(2)],
        ("zoro", False): [episode_payload(2), episode_payload(3)],
    }

    created = await reconciler.seed(snapshot.id)

    assert created == 3
    stored = await stored_episodes(db, snapshot.id)
    assert [ep.providers for ep in stored] == ["gogoanime", "gogoanime,zoro", "zoro"]
    status_updater.refresh_status.assert_not_awaited()
