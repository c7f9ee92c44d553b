"""
Anime status refresh.

Re-fetches anime metadata from the episode source and writes back only the
fields that changed (status, total episode count, title).
"""

import logging
from typing import Any, Dict, Tuple, Union

from app.models.anime import Anime
from app.schemas.episode import AnimeSnapshot
from app.services.anime_store import AnimeStore
from app.services.consumet import ConsumetClient

logger = logging.getLogger(__name__)

# Fields compared, in diff-log order
TRACKED_FIELDS = ("status", "total_episodes", "title")


def format_changes(changes: Dict[str, Tuple[Any, Any]]) -> str:
    """Render changes as "status: RELEASING -> FINISHED | total_episodes: 0 -> 12"."""
    return " | ".join(f"{field}: {old} -> {new}" for field, (old, new) in changes.items())


class StatusUpdater:
    """
    Keeps an anime's status, episode count and title in sync with upstream.

    Never creates or deletes anime.
    """

    def __init__(self, store: AnimeStore, source: ConsumetClient, title_type: str = "english"):
        self.store = store
        self.source = source
        self.title_type = title_type

    async def refresh_status(self, anime: Union[Anime, AnimeSnapshot]) -> Dict[str, Tuple[Any, Any]]:
        """
        Refresh one anime from upstream.

        Returns:
            Mapping of changed field -> (old, new); empty when nothing
            changed or the info could not be fetched
        """
        info = await self.source.fetch_anime_info(anime.id, self.title_type)
        if info is None:
            logger.info(f"Failed to fetch anime info for {anime.id}, status unchanged")
            return {}

        changes: Dict[str, Tuple[Any, Any]] = {}
        for field in TRACKED_FIELDS:
            old = getattr(anime, field)
            new = getattr(info, field)
            # A missing upstream title never blanks a stored one
            if field == "title" and new is None:
                continue
            if old != new:
                changes[field] = (old, new)

        if not changes:
            return {}

        await self.store.update_anime_fields(
            anime.id,
            **{field: new for field, (_, new) in changes.items()},
        )
        logger.info(f"Updated info for {anime.id} | {format_changes(changes)}")
        return changes
