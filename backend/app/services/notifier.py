"""
New-episode notifications.

For every subscriber of an anime, sends one message per configured channel:

- Discord webhook: an embed
- ntfy topic: a plain-text message (image attached through the Attach header)

Deliveries run concurrently with a bounded fan-out and are never retried.
Failures are logged and counted; they never propagate to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Optional, Union

import httpx

from app.core.config import settings
from app.core.errors import report_exception
from app.models.anime import Anime
from app.schemas.episode import AnimeSnapshot, DiscoveredEpisode
from app.services.anime_store import AnimeStore

logger = logging.getLogger(__name__)


EMBED_COLOR = 11730954
AUTHOR_NAME = "Ani-Notify"
AUTHOR_ICON_URL = "http://cloud.tohjuler.dk/s/tEKyqLNxmX7Adrr/download/Zetsu.jpg"
FOOTER_TEXT = "Delivered by (Ani-Notify)[https://github.com/Tohjuler/Ani-Notify]"


@dataclass(frozen=True)
class DeliveryReport:
    """Outcome of one notify() call."""

    attempted: int = 0
    delivered: int = 0
    failed: int = 0


# ========================================
# Message formatting
# ========================================

def headline(anime: Union[Anime, AnimeSnapshot], episode: DiscoveredEpisode) -> str:
    """"Episode 5 (Dub) of Frieren is out!" / "Episode 5 of Frieren is out!"."""
    dub = "(Dub) " if episode.dub else ""
    return f"Episode {episode.number} {dub}of {anime.title or anime.id} is out!"


def message_body(episode: DiscoveredEpisode) -> str:
    lines = [f"Title: {episode.title or 'N/A'}"]
    if episode.description:
        lines.append(f"Description: {episode.description}")
    lines.append(f"Language: {episode.language}")
    lines.append(f"You can watch it on {episode.providers_label}")
    return "\n".join(lines)


def discord_payload(anime: Union[Anime, AnimeSnapshot], episode: DiscoveredEpisode) -> Dict[str, Any]:
    embed: Dict[str, Any] = {
        "color": EMBED_COLOR,
        "author": {
            "name": AUTHOR_NAME,
            "icon_url": AUTHOR_ICON_URL,
        },
        "title": headline(anime, episode),
        "description": message_body(episode),
        "footer": {"text": FOOTER_TEXT},
    }
    if episode.image:
        embed["image"] = {"url": episode.image}
    return {"embeds": [embed]}


def ntfy_message(anime: Union[Anime, AnimeSnapshot], episode: DiscoveredEpisode) -> str:
    return f"{headline(anime, episode)}\n\n{message_body(episode)}"


def ntfy_headers(episode: DiscoveredEpisode) -> Dict[str, str]:
    headers = {"Content-Type": "text/plain"}
    if episode.image:
        headers["Attach"] = episode.image
    return headers


# ========================================
# Notifier
# ========================================

class Notifier:
    """
    Fans a new-episode message out to every subscriber.

    Example:
        >>> notifier = Notifier(store)
        >>> report = await notifier.notify(anime, episode)
        >>> report.failed
        0
    """

    def __init__(
        self,
        store: AnimeStore,
        client: Optional[httpx.AsyncClient] = None,
        max_concurrency: Optional[int] = None,
    ):
        self.store = store
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
        self._semaphore = asyncio.Semaphore(max_concurrency or settings.NOTIFY_MAX_CONCURRENCY)

    async def __aenter__(self) -> "Notifier":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _deliver(self, channel: str, send: Awaitable[httpx.Response]) -> bool:
        async with self._semaphore:
            try:
                response = await send
                response.raise_for_status()
                return True
            except httpx.HTTPError as e:
                logger.warning(f"{channel} delivery failed: {e}")
                return False

    async def notify(self, anime: Union[Anime, AnimeSnapshot], episode: DiscoveredEpisode) -> DeliveryReport:
        """
        Notify all subscribers of `anime` about `episode`.

        Returns:
            Aggregate delivery counts
        """
        users = await self.store.subscribers_of(anime.id)
        if not users:
            return DeliveryReport()

        deliveries: List[Awaitable[bool]] = []
        for user in users:
            if user.discord_webhook:
                deliveries.append(self._deliver(
                    "Discord",
                    self._client.post(user.discord_webhook, json=discord_payload(anime, episode)),
                ))
            if user.ntfy_url:
                deliveries.append(self._deliver(
                    "ntfy",
                    self._client.post(
                        user.ntfy_url,
                        content=ntfy_message(anime, episode).encode("utf-8"),
                        headers=ntfy_headers(episode),
                    ),
                ))

        if not deliveries:
            return DeliveryReport()

        results = await asyncio.gather(*deliveries, return_exceptions=True)

        delivered = 0
        for result in results:
            if isinstance(result, BaseException):
                report_exception(result, anime_id=anime.id, episode=episode.number, dub=episode.dub)
            elif result:
                delivered += 1

        report = DeliveryReport(
            attempted=len(results),
            delivered=delivered,
            failed=len(results) - delivered,
        )
        if report.failed:
            logger.warning(
                f"{report.failed}/{report.attempted} notifications failed for "
                f"{anime.id} episode {episode.number} ({episode.language})"
            )
        return report
