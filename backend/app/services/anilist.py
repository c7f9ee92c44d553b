"""
AniList GraphQL client.

Used by the AniList sync job (users' PLANNING/CURRENT lists) and by
Auto-Register (the upcoming airing schedule). Like the Consumet client, every
failure is logged and turned into an empty result.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from app.core.config import settings
from app.schemas.anilist import AiringPageResponse, MediaListResponse, UserLookupResponse

logger = logging.getLogger(__name__)


USER_ID_QUERY = """
query ($username: String) {
    User(name: $username) {
        id
    }
}
"""

MEDIA_LIST_QUERY = """
query ($userId: Int, $status: MediaListStatus) {
    MediaListCollection(userId: $userId, type: ANIME, status: $status) {
        lists {
            entries {
                mediaId
            }
        }
    }
}
"""

AIRING_SCHEDULE_QUERY = """
query ($page: Int, $from: Int, $to: Int) {
    Page(page: $page) {
        pageInfo {
            hasNextPage
        }
        airingSchedules(airingAt_greater: $from, airingAt_lesser: $to) {
            media {
                id
                status
            }
        }
    }
}
"""

# Upper bound on airing-schedule pages fetched in one run
MAX_AIRING_PAGES = 50

SECONDS_PER_DAY = 24 * 60 * 60


class AniListClient:
    """
    Minimal AniList API client.

    Example:
        >>> async with AniListClient() as anilist:
        ...     user_id = await anilist.get_user_id("Tohjuler")
        ...     planning = await anilist.get_list(user_id, "PLANNING")
    """

    # Media list statuses synced into subscriptions
    SYNCED_LIST_STATUSES = ("PLANNING", "CURRENT")

    def __init__(
        self,
        api_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.api_url = api_url or settings.ANILIST_API_URL
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
        )

    async def __aenter__(self) -> "AniListClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _query(self, query: str, variables: Dict[str, Any]) -> Any:
        response = await self._client.post(
            self.api_url,
            json={"query": query, "variables": variables},
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        response.raise_for_status()
        return response.json()

    async def get_user_id(self, username: str) -> Optional[str]:
        """
        Resolve an AniList username to its numeric id.

        Numeric input is assumed to already be an id and is returned as-is.
        """
        if username.strip().isdigit():
            return username.strip()

        try:
            payload = UserLookupResponse.model_validate(
                await self._query(USER_ID_QUERY, {"username": username})
            )
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            logger.warning(f"Failed to resolve AniList user {username}: {e}")
            return None

        if payload.data is None or payload.data.User is None:
            logger.info(f"AniList user {username} not found")
            return None

        return str(payload.data.User.id)

    async def get_list(self, user_id: str, status: str) -> List[str]:
        """
        Anime ids on one of a user's lists.

        Args:
            user_id: Numeric AniList user id
            status: MediaListStatus (PLANNING, CURRENT, PAUSED, COMPLETED, DROPPED, REPEATING)

        Returns:
            Anime ids as strings (order preserved, no duplicates), [] on failure
        """
        if not user_id:
            return []

        try:
            payload = MediaListResponse.model_validate(
                await self._query(MEDIA_LIST_QUERY, {"userId": int(user_id), "status": status})
            )
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            logger.warning(f"Failed to fetch {status} list for AniList user {user_id}: {e}")
            return []

        collection = payload.data.MediaListCollection if payload.data else None
        if collection is None:
            return []

        ids: List[str] = []
        for media_list in collection.lists:
            for entry in media_list.entries:
                media_id = str(entry.mediaId)
                if media_id not in ids:
                    ids.append(media_id)
        return ids

    async def fetch_airing_anime(self, days_ahead: int, now: Optional[float] = None) -> List[str]:
        """
        Ids of RELEASING anime with an episode airing in the next `days_ahead` days.

        Walks the paginated airing schedule. Any failure aborts the walk and
        returns [] so a partial page set is never registered.
        """
        start = int(now if now is not None else time.time())
        end = start + days_ahead * SECONDS_PER_DAY

        ids: List[str] = []
        page = 1
        while page <= MAX_AIRING_PAGES:
            try:
                payload = AiringPageResponse.model_validate(
                    await self._query(
                        AIRING_SCHEDULE_QUERY,
                        {"page": page, "from": start, "to": end},
                    )
                )
            except (httpx.HTTPError, ValidationError, ValueError) as e:
                logger.warning(f"Failed to fetch airing schedule page {page}: {e}")
                return []

            for schedule in payload.data.Page.airingSchedules:
                media = schedule.media
                if media is None or media.status != "RELEASING":
                    continue
                media_id = str(media.id)
                if media_id not in ids:
                    ids.append(media_id)

            if not payload.data.Page.pageInfo.hasNextPage:
                break
            page += 1

        return ids
