"""
Domain result types passed between the reconciler, status updater and notifier.
"""

from datetime import datetime
from typing import TYPE_CHECKING, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from app.models.anime import AnimeStatus

if TYPE_CHECKING:
    from app.models.anime import Anime


class EpisodeKey(NamedTuple):
    """Identity of an episode within one anime."""

    number: int
    dub: bool


class AnimeInfo(BaseModel):
    """Anime metadata as reported by the episode source."""

    id: str
    title: Optional[str] = None
    status: AnimeStatus = AnimeStatus.NOT_YET_RELEASED
    total_episodes: int = 0


class AnimeSnapshot(BaseModel):
    """
    Immutable copy of an Anime row and the keys of its stored episodes.

    Taken before any write so that a rollback (which expires ORM objects)
    never forces a lazy reload inside the async reconcile loop.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    title: Optional[str] = None
    status: AnimeStatus
    total_episodes: int = 0
    known_episodes: Tuple[EpisodeKey, ...] = ()
    latest_release: Optional[datetime] = None

    @classmethod
    def capture(cls, anime: "Anime", with_episodes: bool = True) -> "AnimeSnapshot":
        """
        Snapshot an Anime.

        `with_episodes` requires `anime.episodes` to be loaded already
        (selectinload); pass False for an anime loaded without them.
        """
        known: Tuple[EpisodeKey, ...] = ()
        latest: Optional[datetime] = None
        if with_episodes:
            known = tuple(EpisodeKey(ep.number, ep.dub) for ep in anime.episodes)
            releases = [ep.released_at for ep in anime.episodes if ep.released_at is not None]
            latest = max(releases) if releases else None

        return cls(
            id=anime.id,
            title=anime.title,
            status=anime.status,
            total_episodes=anime.total_episodes or 0,
            known_episodes=known,
            latest_release=latest,
        )


class DiscoveredEpisode(BaseModel):
    """An episode found during one reconcile pass."""

    anime_id: str
    number: int
    dub: bool
    providers: List[str] = Field(default_factory=list)
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    released_at: Optional[datetime] = None

    @property
    def key(self) -> EpisodeKey:
        return EpisodeKey(self.number, self.dub)

    @property
    def language(self) -> str:
        return "Dub" if self.dub else "Sub"

    @property
    def providers_label(self) -> str:
        """Providers capitalised and comma-joined ("Gogoanime, Zoro")."""
        return ", ".join(p[:1].upper() + p[1:] for p in self.providers)
