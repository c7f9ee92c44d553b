"""
Consumet episode-source client.

Wraps the two Consumet endpoints the engine needs:

- GET {CONSUMET_URL}/meta/anilist/episodes/{id}?dub=...&provider=...
- GET {CONSUMET_URL}/meta/anilist/info/{id}

Every call is a single round trip. Transport errors, non-2xx responses and
bodies that fail validation are logged and turned into an empty result; the
next scheduled check simply tries again.
"""

import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError

from app.core.config import settings
from app.models.anime import AnimeStatus
from app.schemas.consumet import ConsumetAnimeInfo, ProviderEpisode, provider_episodes_adapter
from app.schemas.episode import AnimeInfo

logger = logging.getLogger(__name__)


# Consumet's human-readable status → AnimeStatus.
# Anything not listed ("Not yet aired", "Hiatus", "Unknown", ...) maps to
# NOT_YET_RELEASED.
STATUS_MAP = {
    "Completed": AnimeStatus.FINISHED,
    "Ongoing": AnimeStatus.RELEASING,
    "Not yet aired": AnimeStatus.NOT_YET_RELEASED,
}


def map_status(raw_status: Optional[str]) -> AnimeStatus:
    return STATUS_MAP.get(raw_status or "", AnimeStatus.NOT_YET_RELEASED)


class ConsumetClient:
    """
    Read-only client for a Consumet instance.

    Can be used as an async context manager, or given an existing
    httpx.AsyncClient (which the caller then owns).

    Example:
        >>> async with ConsumetClient() as consumet:
        ...     episodes = await consumet.fetch_episodes("21", dub=False, provider="gogoanime")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.CONSUMET_URL).rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
        )

    async def __aenter__(self) -> "ConsumetClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def episodes_url(self, anime_id: str) -> str:
        return f"{self.base_url}/meta/anilist/episodes/{anime_id}"

    def info_url(self, anime_id: str) -> str:
        return f"{self.base_url}/meta/anilist/info/{anime_id}"

    async def fetch_episodes(self, anime_id: str, dub: bool, provider: str) -> List[ProviderEpisode]:
        """
        Fetch the episode list of one anime from one provider.

        Args:
            anime_id: External anime id
            dub: Fetch the dubbed list instead of the subbed one
            provider: Consumet provider name (e.g. "gogoanime")

        Returns:
            Episodes as listed by the provider, or [] on any failure
        """
        variant = "dub" if dub else "sub"
        try:
            response = await self._client.get(
                self.episodes_url(anime_id),
                params={"dub": "true" if dub else "false", "provider": provider},
            )
            response.raise_for_status()
            return provider_episodes_adapter.validate_python(response.json())

        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch {variant} episodes for {anime_id} from {provider}: {e}")
            return []
        except (ValidationError, ValueError) as e:
            logger.warning(f"Malformed {variant} episode list for {anime_id} from {provider}: {e}")
            return []

    async def fetch_anime_info(self, anime_id: str, title_type: str = "english") -> Optional[AnimeInfo]:
        """
        Fetch anime metadata.

        Args:
            anime_id: External anime id
            title_type: Which title variant to use ("english", "romaji", "native")

        Returns:
            AnimeInfo, or None on any failure
        """
        try:
            response = await self._client.get(self.info_url(anime_id))
            response.raise_for_status()
            payload = ConsumetAnimeInfo.model_validate(response.json())

        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch anime info for {anime_id}: {e}")
            return None
        except (ValidationError, ValueError) as e:
            logger.warning(f"Malformed anime info for {anime_id}: {e}")
            return None

        return AnimeInfo(
            id=payload.id,
            title=payload.title_for(title_type),
            status=map_status(payload.status),
            total_episodes=payload.total_episodes or 0,
        )
