"""
Persistence operations for anime, episodes and subscriptions.

All database access of the episode engine goes through AnimeStore so the
reconciler, status updater, notifier and jobs never build queries
themselves. Write methods commit immediately: each stored episode is its own
unit of work, so one conflicting row never rolls back the rest of a pass.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Set

from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.models.anime import Anime, AnimeStatus, Episode, user_animes
from app.models.user import User
from app.schemas.episode import AnimeInfo

logger = logging.getLogger(__name__)

# Columns the status updater is allowed to change
UPDATABLE_ANIME_FIELDS = {"title", "status", "total_episodes"}


class AnimeStore:
    """
    Async data access for the episode engine.

    Example:
        >>> store = AnimeStore(db)
        >>> animes = await store.list_releasing_with_episodes()
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================
    # Anime
    # ========================================

    async def get_anime(self, anime_id: str) -> Optional[Anime]:
        return await self.db.get(Anime, anime_id)

    async def anime_exists(self, anime_id: str) -> bool:
        result = await self.db.execute(select(Anime.id).where(Anime.id == anime_id))
        return result.scalar_one_or_none() is not None

    async def list_releasing_with_episodes(self) -> List[Anime]:
        """Every RELEASING anime with its episodes loaded."""
        result = await self.db.execute(
            select(Anime)
            .where(Anime.status == AnimeStatus.RELEASING)
            .options(selectinload(Anime.episodes))
            .order_by(Anime.id)
        )
        return list(result.scalars().all())

    async def create_anime(self, info: AnimeInfo) -> Anime:
        """
        Insert a new anime.

        Raises:
            IntegrityError: If the anime already exists (session rolled back)
        """
        anime = Anime(
            id=info.id,
            title=info.title,
            status=info.status,
            total_episodes=info.total_episodes,
        )
        self.db.add(anime)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise

        logger.info(f"Registered anime {info.id} ({info.title})")
        return anime

    async def update_anime_fields(self, anime_id: str, **fields: Any) -> None:
        """Partial update of title/status/total_episodes."""
        unknown = set(fields) - UPDATABLE_ANIME_FIELDS
        if unknown:
            raise ValueError(f"Cannot update anime fields: {sorted(unknown)}")
        if not fields:
            return

        try:
            await self.db.execute(
                update(Anime).where(Anime.id == anime_id).values(**fields)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def delete_finished(self) -> int:
        """
        Delete every FINISHED anime together with its episodes and subscriptions.

        Returns:
            Number of anime deleted
        """
        result = await self.db.execute(
            select(Anime)
            .where(Anime.status == AnimeStatus.FINISHED)
            .options(selectinload(Anime.episodes), selectinload(Anime.users))
        )
        finished = list(result.scalars().all())

        for anime in finished:
            await self.db.delete(anime)

        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        return len(finished)

    # ========================================
    # Episodes
    # ========================================

    async def find_episode(self, anime_id: str, number: int, dub: bool) -> Optional[Episode]:
        result = await self.db.execute(
            select(Episode).where(
                Episode.anime_id == anime_id,
                Episode.number == number,
                Episode.dub == dub,
            )
        )
        return result.scalar_one_or_none()

    async def create_episode(
        self,
        anime_id: str,
        number: int,
        dub: bool,
        provider: str,
        released_at: datetime,
        title: Optional[str] = None,
        description: Optional[str] = None,
        image: Optional[str] = None,
    ) -> Episode:
        """
        Insert a new episode listed by a single provider.

        Raises:
            IntegrityError: If (anime_id, number, dub) already exists
                (session rolled back)
        """
        episode = Episode(
            anime_id=anime_id,
            number=number,
            dub=dub,
            providers=provider,
            title=title,
            description=description,
            image=image,
            released_at=released_at,
        )
        self.db.add(episode)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise
        return episode

    async def add_episode_provider(self, episode: Episode, provider: str) -> bool:
        """
        Append a provider to an episode's provider set.

        Returns:
            True if the provider was added, False if it was already listed
        """
        if provider in episode.provider_list:
            return False

        episode.providers = ",".join(episode.provider_list + [provider])
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return True

    async def count_episodes(self, anime_id: str, dub: bool) -> int:
        result = await self.db.execute(
            select(func.count(Episode.id)).where(
                Episode.anime_id == anime_id,
                Episode.dub == dub,
            )
        )
        return result.scalar_one()

    # ========================================
    # Recent-episode feed
    # ========================================

    def _recent_for_user_filter(self, user_id: str, since: Optional[datetime]):
        if since is None:
            since = datetime.now(timezone.utc) - timedelta(days=settings.NEW_EPISODE_DAYS)
        subscribed = select(user_animes.c.anime_id).where(user_animes.c.user_id == user_id)
        return and_(
            Episode.anime_id.in_(subscribed),
            Episode.released_at >= since,
        )

    async def recent_episodes_for_user(
        self,
        user_id: str,
        since: Optional[datetime] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> List[Episode]:
        """
        Episodes of the user's subscribed anime released since `since`
        (default: the last NEW_EPISODE_DAYS days).

        Newest first, with `Episode.anime` loaded.
        """
        page = max(page, 1)
        result = await self.db.execute(
            select(Episode)
            .where(self._recent_for_user_filter(user_id, since))
            .options(selectinload(Episode.anime))
            .order_by(Episode.released_at.desc(), Episode.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return list(result.scalars().all())

    async def count_recent_episodes_for_user(self, user_id: str, since: Optional[datetime] = None) -> int:
        result = await self.db.execute(
            select(func.count(Episode.id)).where(self._recent_for_user_filter(user_id, since))
        )
        return result.scalar_one()

    # ========================================
    # Users & subscriptions
    # ========================================

    async def subscribers_of(self, anime_id: str) -> List[User]:
        result = await self.db.execute(
            select(User)
            .join(user_animes, user_animes.c.user_id == User.id)
            .where(user_animes.c.anime_id == anime_id)
            .order_by(User.username)
        )
        return list(result.scalars().all())

    async def users_with_anilist(self) -> List[User]:
        result = await self.db.execute(
            select(User).where(User.anilist_id.is_not(None)).order_by(User.username)
        )
        return list(result.scalars().all())

    async def subscribed_anime_ids(self, user_id: str) -> Set[str]:
        result = await self.db.execute(
            select(user_animes.c.anime_id).where(user_animes.c.user_id == user_id)
        )
        return set(result.scalars().all())

    async def subscribe(self, user_id: str, anime_id: str) -> bool:
        """
        Subscribe a user to an anime.

        Idempotent: returns False when the subscription already exists.
        """
        exists = await self.db.execute(
            select(user_animes.c.anime_id).where(
                user_animes.c.user_id == user_id,
                user_animes.c.anime_id == anime_id,
            )
        )
        if exists.first() is not None:
            return False

        try:
            await self.db.execute(
                insert(user_animes).values(user_id=user_id, anime_id=anime_id)
            )
            await self.db.commit()
        except IntegrityError:
            # Subscribed concurrently
            await self.db.rollback()
            return False
        return True

