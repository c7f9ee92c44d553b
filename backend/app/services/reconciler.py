"""
Episode reconciliation.

Compares the episode lists reported by each provider with what is stored,
persists the difference, and reports which episodes were discovered in this
pass so the caller can notify subscribers.

Flow for one anime:
-------------------
    for provider in providers:
        fetch sub list, fetch dub list
        for every episode whose (number, dub) was not known before the pass:
            new row        → create with providers = provider
            existing row   → append provider (title/description untouched)
    collapse discoveries by (number, dub), merging provider names
    completion check   → StatusUpdater.refresh_status()

Each stored episode is committed on its own; a failure with one provider or
one row is reported and the pass carries on.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Literal, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.errors import report_exception
from app.models.anime import Anime, AnimeStatus
from app.schemas.consumet import ProviderEpisode
from app.schemas.episode import AnimeSnapshot, DiscoveredEpisode, EpisodeKey
from app.services.anime_store import AnimeStore
from app.services.consumet import ConsumetClient
from app.services.status_updater import StatusUpdater

logger = logging.getLogger(__name__)

StoreOutcome = Literal["created", "merged", "unchanged"]


def collapse_discoveries(discoveries: Iterable[DiscoveredEpisode]) -> List[DiscoveredEpisode]:
    """
    Merge discoveries that share (number, dub).

    Keeps the first occurrence (and its title/description) and unions the
    provider names in order of first appearance.
    """
    collapsed: Dict[EpisodeKey, DiscoveredEpisode] = {}
    for episode in discoveries:
        existing = collapsed.get(episode.key)
        if existing is None:
            collapsed[episode.key] = episode.model_copy(update={"providers": list(episode.providers)})
            continue
        for provider in episode.providers:
            if provider not in existing.providers:
                existing.providers.append(provider)
    return list(collapsed.values())


class EpisodeReconciler:
    """
    Discovers and stores new episodes for tracked anime.

    Example:
        >>> reconciler = EpisodeReconciler(store, consumet, StatusUpdater(store, consumet))
        >>> snapshot = AnimeSnapshot.capture(anime)
        >>> new_episodes = await reconciler.reconcile(snapshot, snapshot.known_episodes)
    """

    def __init__(
        self,
        store: AnimeStore,
        source: ConsumetClient,
        status_updater: Optional[StatusUpdater] = None,
        providers: Optional[List[str]] = None,
    ):
        self.store = store
        self.source = source
        self.status_updater = status_updater
        self.providers = providers or settings.anime_providers_list

    # ========================================
    # Persistence
    # ========================================

    async def _store_episode(
        self,
        anime_id: str,
        episode: ProviderEpisode,
        dub: bool,
        provider: str,
    ) -> Optional[StoreOutcome]:
        """
        Create or merge one fetched episode.

        Returns:
            The outcome, or None when the row could not be written
        """
        try:
            stored = await self.store.find_episode(anime_id, episode.number, dub)
            if stored is None:
                await self.store.create_episode(
                    anime_id=anime_id,
                    number=episode.number,
                    dub=dub,
                    provider=provider,
                    released_at=episode.released_at or datetime.now(timezone.utc),
                    title=episode.title,
                    description=episode.description,
                    image=episode.image,
                )
                return "created"

            added = await self.store.add_episode_provider(stored, provider)
            return "merged" if added else "unchanged"

        except SQLAlchemyError as e:
            # IntegrityError: another job stored the same (anime, number, dub) first
            report_exception(e, anime_id=anime_id, number=episode.number, dub=dub, provider=provider)
            return None

    async def _merge_known_episode(self, anime_id: str, number: int, dub: bool, provider: str) -> None:
        """Add a provider to an already announced episode, without announcing it again."""
        try:
            stored = await self.store.find_episode(anime_id, number, dub)
            if stored is not None:
                await self.store.add_episode_provider(stored, provider)
        except SQLAlchemyError as e:
            report_exception(e, anime_id=anime_id, number=number, dub=dub, provider=provider)

    # ========================================
    # Reconcile
    # ========================================

    async def reconcile(
        self,
        anime: Union[Anime, AnimeSnapshot],
        known_episodes: Iterable[Union[EpisodeKey, object]],
        providers: Optional[List[str]] = None,
    ) -> List[DiscoveredEpisode]:
        """
        Fetch, diff and persist the episodes of one anime.

        Args:
            anime: The anime (or a snapshot of it)
            known_episodes: Episodes already stored, anything with
                `number` and `dub` attributes
            providers: Provider names to query (defaults to ANIME_PROVIDERS)

        Returns:
            Episodes discovered in this invocation, one per (number, dub)
        """
        snapshot = anime if isinstance(anime, AnimeSnapshot) else AnimeSnapshot.capture(anime, with_episodes=False)
        known = {EpisodeKey(ep.number, ep.dub) for ep in known_episodes}

        discoveries: List[DiscoveredEpisode] = []
        for provider in providers or self.providers:
            try:
                for dub in (False, True):
                    fetched = await self.source.fetch_episodes(snapshot.id, dub, provider)
                    for episode in fetched:
                        if EpisodeKey(episode.number, dub) in known:
                            await self._merge_known_episode(snapshot.id, episode.number, dub, provider)
                            continue

                        outcome = await self._store_episode(snapshot.id, episode, dub, provider)
                        # "unchanged": already stored with this provider by
                        # an overlapping job, which notifies for it
                        if outcome is None or outcome == "unchanged":
                            continue

                        discoveries.append(DiscoveredEpisode(
                            anime_id=snapshot.id,
                            number=episode.number,
                            dub=dub,
                            providers=[provider],
                            title=episode.title,
                            description=episode.description,
                            image=episode.image,
                            released_at=episode.released_at,
                        ))
            except Exception as e:
                report_exception(e, anime_id=snapshot.id, provider=provider)
                continue

        new_episodes = collapse_discoveries(discoveries)
        if new_episodes:
            logger.info(f"Found {len(new_episodes)} new episodes for {snapshot.id}")

        if self.needs_status_refresh(snapshot, known, new_episodes):
            await self._refresh_status(snapshot)

        return new_episodes

    @staticmethod
    def needs_status_refresh(
        anime: AnimeSnapshot,
        known: Iterable[EpisodeKey],
        new_episodes: List[DiscoveredEpisode],
    ) -> bool:
        """
        Completion check.

        True when both the sub and the dub episode counts (stored plus newly
        discovered) reach the announced total, or when a NOT_YET_RELEASED
        anime has just received more than one episode.
        """
        keys = set(known) | {episode.key for episode in new_episodes}
        sub_count = sum(1 for key in keys if not key.dub)
        dub_count = sum(1 for key in keys if key.dub)

        if sub_count >= anime.total_episodes and dub_count >= anime.total_episodes:
            return True
        return anime.status == AnimeStatus.NOT_YET_RELEASED and len(new_episodes) > 1

    async def _refresh_status(self, anime: AnimeSnapshot) -> None:
        if self.status_updater is None:
            return
        try:
            await self.status_updater.refresh_status(anime)
        except Exception as e:
            report_exception(e, anime_id=anime.id, operation="refresh_status")

    # ========================================
    # Seeding
    # ========================================

    async def seed(self, anime_id: str, providers: Optional[List[str]] = None) -> int:
        """
        Store every episode the providers currently list for a new anime.

        No notifications and no completion check: the episodes are history,
        not news.

        Returns:
            Number of episode rows created
        """
        created = 0
        for provider in providers or self.providers:
            try:
                for dub in (False, True):
                    for episode in await self.source.fetch_episodes(anime_id, dub, provider):
                        if await self._store_episode(anime_id, episode, dub, provider) == "created":
                            created += 1
            except Exception as e:
                report_exception(e, anime_id=anime_id, provider=provider, operation="seed")
                continue

        logger.info(f"Seeded {created} episodes for {anime_id}")
        return created
