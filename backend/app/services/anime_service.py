"""
Anime registration.

Registering an anime means fetching its metadata, storing it, optionally
subscribing a user, and seeding every episode that already exists upstream
(so only later episodes trigger notifications).

Used by the AniList sync (titles on users' lists) and by Auto-Register
(titles about to air).
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.config import settings
from app.core.errors import report_exception
from app.models.anime import Anime, AnimeStatus
from app.services.anime_store import AnimeStore
from app.services.anilist import AniListClient
from app.services.consumet import ConsumetClient
from app.services.reconciler import EpisodeReconciler
from app.services.status_updater import StatusUpdater

logger = logging.getLogger(__name__)


class AnimeRegistrationError(Exception):
    """Base exception for anime registration failures."""
    pass


class AnimeNotFoundError(AnimeRegistrationError):
    """Raised when the episode source has no info for an anime."""

    def __init__(self, anime_id: str):
        self.anime_id = anime_id
        super().__init__("Anime not found")


class AnimeFinishedError(AnimeRegistrationError):
    """Raised when trying to register an anime that has already finished airing."""

    def __init__(self, anime_id: str):
        self.anime_id = anime_id
        super().__init__("Anime is finished")


@dataclass
class RegistrationResult:
    """Split of candidate ids into untracked (queued) and unreadable (failed)."""

    queued: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


@dataclass
class RegistrationSummary:
    """Outcome of an Auto-Register run."""

    found: int = 0
    queued: int = 0
    added: int = 0
    failures: Dict[str, int] = field(default_factory=dict)

    @property
    def failed(self) -> int:
        return sum(self.failures.values())

    def as_dict(self) -> dict:
        return {
            "found": self.found,
            "queued": self.queued,
            "added": self.added,
            "failed": self.failed,
            "failures": dict(self.failures),
        }


class AnimeService:
    """
    Registers anime and subscriptions.

    Example:
        >>> service = AnimeService(store, consumet, reconciler, title_type="english")
        >>> await service.add_anime_to_user("154587", user.id)
    """

    def __init__(
        self,
        store: AnimeStore,
        source: ConsumetClient,
        reconciler: EpisodeReconciler,
        title_type: str = "english",
    ):
        self.store = store
        self.source = source
        self.reconciler = reconciler
        self.title_type = title_type

    async def add_anime(self, anime_id: str, user_id: Optional[str] = None) -> Anime:
        """
        Register a new anime and seed its existing episodes.

        Args:
            anime_id: External anime id
            user_id: Optional user to subscribe

        Raises:
            AnimeNotFoundError: No info upstream
            AnimeFinishedError: Already finished airing
            AnimeRegistrationError: Could not be stored
        """
        info = await self.source.fetch_anime_info(anime_id, self.title_type)
        if info is None:
            raise AnimeNotFoundError(anime_id)
        if info.status == AnimeStatus.FINISHED:
            raise AnimeFinishedError(anime_id)

        try:
            anime = await self.store.create_anime(info)
        except IntegrityError as e:
            raise AnimeRegistrationError("Anime already registered") from e
        except SQLAlchemyError as e:
            raise AnimeRegistrationError("Failed to store anime") from e

        if user_id is not None:
            await self.store.subscribe(user_id, anime_id)

        await self.reconciler.seed(anime_id)
        return anime

    async def add_anime_to_user(self, anime_id: str, user_id: str) -> bool:
        """
        Subscribe a user, registering the anime first if it is not tracked.

        Returns:
            True if a new subscription was created

        Raises:
            AnimeRegistrationError: The anime had to be registered and could not be
        """
        if not await self.store.anime_exists(anime_id):
            await self.add_anime(anime_id, user_id=user_id)
            return True

        return await self.store.subscribe(user_id, anime_id)

    async def find_untracked(self, anime_ids: Iterable[str]) -> RegistrationResult:
        """Split ids into those not yet tracked and those that could not be checked."""
        result = RegistrationResult()
        for anime_id in anime_ids:
            try:
                if not await self.store.anime_exists(anime_id):
                    result.queued.append(anime_id)
            except SQLAlchemyError as e:
                report_exception(e, anime_id=anime_id, operation="find_untracked")
                result.failed.append(anime_id)
        return result

    async def register_airing(self, anilist: AniListClient, days_ahead: int) -> RegistrationSummary:
        """
        Register every untracked anime airing in the next `days_ahead` days.

        Failures are counted by reason and logged; one failing anime never
        stops the rest.
        """
        airing = await anilist.fetch_airing_anime(days_ahead)
        candidates = await self.find_untracked(airing)

        summary = RegistrationSummary(found=len(airing), queued=len(candidates.queued))
        failures: Counter = Counter({"Fetch error": len(candidates.failed)} if candidates.failed else {})
        failed_ids: List[str] = list(candidates.failed)

        logger.info(f"Adding {len(candidates.queued)} new animes.")

        for anime_id in candidates.queued:
            try:
                await self.add_anime(anime_id)
                summary.added += 1
            except AnimeRegistrationError as e:
                failures[str(e)] += 1
                failed_ids.append(anime_id)
            except Exception as e:
                report_exception(e, anime_id=anime_id, operation="register_airing")
                failures[type(e).__name__] += 1
                failed_ids.append(anime_id)

        summary.failures = dict(failures)

        logger.info(f"Failed to add {summary.failed} animes.")
        for reason, count in summary.failures.items():
            logger.info(f"- Reason: {reason} Count: {count}")
        if settings.DEBUG and failed_ids:
            logger.debug(f"Failed ids: {failed_ids}")

        return summary


def build_anime_service(store: AnimeStore, source: ConsumetClient, title_type: str = "english") -> AnimeService:
    """Wire an AnimeService with its reconciler and status updater."""
    status_updater = StatusUpdater(store, source, title_type)
    reconciler = EpisodeReconciler(store, source, status_updater)
    return AnimeService(store, source, reconciler, title_type)
