"""
Tests for the AniList sync and Auto-Register jobs.
"""

import json

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.services.anime_store import AnimeStore
from app.tasks.anilist_tasks import perform_new_anime_check, perform_user_update


async def no_sleep(seconds):
    return None


def consumet_info(anime_id, status="Ongoing"):
    return {
        "id": anime_id,
        "title": {"english": f"Show {anime_id}", "romaji": f"Shou {anime_id}"},
        "status": status,
        "totalEpisodes": 12,
    }


class Upstream:
    """AniList GraphQL plus Consumet, keyed by what each request asks for."""

    def __init__(self, lists=None, airing=None, info=None):
        self.lists = lists or {}
        self.airing = airing or []
        self.info = info or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.host == "graphql.anilist.co":
            variables = json.loads(request.content)["variables"]
            if "status" in variables:
                entries = [{"mediaId": media_id} for media_id in self.lists.get(variables["status"], [])]
                return httpx.Response(200, json={"data": {"MediaListCollection": {"lists": [{"entries": entries}]}}})
            return httpx.Response(200, json={"data": {"Page": {
                "pageInfo": {"hasNextPage": False},
                "airingSchedules": [{"media": {"id": media_id, "status": "RELEASING"}} for media_id in self.airing],
            }}})

        if "/info/" in request.url.path:
            anime_id = request.url.path.rsplit("/", 1)[-1]
            if anime_id in self.info:
                return httpx.Response(200, json=self.info[anime_id])
            return httpx.Response(404)
        return httpx.Response(200, json=[])


# ========================================
# AniList-Update
# ========================================

@pytest.mark.asyncio
async def test_user_update_subscribes_listed_anime(
    db: AsyncSession, releasing_anime, scheduler_config, mock_http,
):
    user = User(username="stark", anilist_id="42")
    db.add(user)
    await db.commit()
    store = AnimeStore(db)
    await store.subscribe(user.id, releasing_anime.id)

    upstream = Upstream(
        lists={"PLANNING": [int(releasing_anime.id), 7], "CURRENT": [8]},
        info={"7": consumet_info(7)},
    )

    async with mock_http(upstream) as http:
        result = await perform_user_update(db, scheduler_config, http_client=http, sleep=no_sleep)

    # 7 is registered and subscribed, 8 is unknown upstream
    assert result == {"users": 1, "added": 1, "failed": 1, "users_failed": 0}
    assert await store.subscribed_anime_ids(user.id) == {releasing_anime.id, "7"}
    assert (await store.get_anime("7")).title == "Show 7"


@pytest.mark.asyncio
async def test_user_update_ignores_users_without_anilist(db: AsyncSession, subscriber, scheduler_config, mock_http):
    upstream = Upstream()

    async with mock_http(upstream) as http:
        result = await perform_user_update(db, scheduler_config, http_client=http, sleep=no_sleep)

    assert result["users"] == 0
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_user_update_subscribes_to_tracked_anime_without_lookup(
    db: AsyncSession, releasing_anime, scheduler_config, mock_http,
):
    user = User(username="sein", anilist_id="43")
    db.add(user)
    await db.commit()
    upstream = Upstream(lists={"CURRENT": [int(releasing_anime.id)]})

    async with mock_http(upstream) as http:
        result = await perform_user_update(db, scheduler_config, http_client=http, sleep=no_sleep)

    assert result["added"] == 1
    assert all(request.url.host == "graphql.anilist.co" for request in upstream.requests)


# ========================================
# Auto-Register
# ========================================

@pytest.mark.asyncio
async def test_new_anime_check_registers_airing(db: AsyncSession, releasing_anime, scheduler_config, mock_http):
    upstream = Upstream(
        airing=[int(releasing_anime.id), 7, 9],
        info={"7": consumet_info(7), "9": consumet_info(9, status="Completed")},
    )

    async with mock_http(upstream) as http:
        result = await perform_new_anime_check(db, scheduler_config, http_client=http)

    assert result["found"] == 3
    assert result["queued"] == 2
    assert result["added"] == 1
    assert result["failures"] == {"Anime is finished": 1}
    assert await AnimeStore(db).anime_exists("7")
    assert not await AnimeStore(db).anime_exists("9")
