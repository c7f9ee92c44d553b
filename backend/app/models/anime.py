"""
Anime Models

This module contains the tracked-title models for the Ani-Notify backend.

Models Included:
----------------
1. Anime - A tracked series, keyed by its external (AniList) id
2. Episode - One numbered installment of an anime in one language variant
3. AnimeStatus (Enum) - Release status reported upstream
4. user_animes (Table) - Plain many-to-many between users and animes

Database Tables:
----------------
- animes: Tracked titles
- episodes: Known episodes, one row per (anime, number, dub)
- user_animes: Subscriptions

Relationships:
--------------
- Anime (1) ←→ (Many) Episode
- User (Many) ←→ (Many) Anime via user_animes

Async note:
-----------
Relationships use the default lazy loading, which is not available on an
AsyncSession. Every query that needs `Anime.episodes` or `Anime.users` loads
them explicitly with selectinload() (see app.services.anime_store).
"""

import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Column, Enum, ForeignKey, Integer, Table, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, BaseModel, String100, String255, String500, TimestampMixin, UTCDateTime, utcnow

if TYPE_CHECKING:
    from app.models.user import User


# ================================
# Enums
# ================================

class AnimeStatus(str, enum.Enum):
    """
    Release status of a tracked anime.

    Status Flow:
    ------------
    NOT_YET_RELEASED → RELEASING → FINISHED

    Only RELEASING anime are polled for new episodes. FINISHED anime are
    removed by the daily cleanup job.
    """

    RELEASING = "RELEASING"
    FINISHED = "FINISHED"
    NOT_YET_RELEASED = "NOT_YET_RELEASED"

    def __str__(self) -> str:
        """Return the string value of the enum."""
        return self.value


# ================================
# Subscription Table
# ================================

user_animes = Table(
    "user_animes",
    Base.metadata,
    Column(
        "user_id",
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "anime_id",
        ForeignKey("animes.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    ),
)
# No extra columns, so a plain association table is enough.
# anime_id is indexed for "who is subscribed to this anime?" (Notifier).


# ================================
# Anime Model
# ================================

class Anime(Base, TimestampMixin):
    """
    Anime model - a tracked title.

    Table: animes
    -------------
    The primary key is the external identifier used by both Consumet and
    AniList (e.g. "21" for One Piece), so no lookup table is needed when a
    user subscribes by AniList id.

    Lifecycle:
    ----------
    - Created when a user subscribes, the AniList sync finds a new list
      entry, or Auto-Register picks it from the airing schedule
    - status / total_episodes / title refreshed by the Status Updater
    - Deleted by the daily cleanup once FINISHED (episodes and
      subscriptions go with it)
    """

    __tablename__ = "animes"

    id: Mapped[str] = mapped_column(
        String100,
        primary_key=True,
        comment="External (AniList) anime id"
    )

    title: Mapped[str | None] = mapped_column(
        String255,
        nullable=True,
        comment="Display title in the configured TITLE_TYPE"
    )

    status: Mapped[AnimeStatus] = mapped_column(
        Enum(AnimeStatus, name="anime_status"),
        nullable=False,
        default=AnimeStatus.NOT_YET_RELEASED,
        index=True,
        comment="Upstream release status"
    )
    # Index for the polling query: WHERE status = 'RELEASING'

    total_episodes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Announced episode count (0 = unknown)"
    )

    # ================================
    # Relationships
    # ================================

    episodes: Mapped[list["Episode"]] = relationship(
        "Episode",
        back_populates="anime",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    # Delete anime → delete all its episodes

    users: Mapped[list["User"]] = relationship(
        "User",
        secondary=user_animes,
        back_populates="animes",
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Anime(id={self.id!r}, title={self.title!r}, "
            f"status={self.status}, total_episodes={self.total_episodes})"
        )


# ================================
# Episode Model
# ================================

class Episode(BaseModel):
    """
    Episode model - one installment in one language variant.

    Table: episodes
    ---------------
    Identity is the triple (anime_id, number, dub): sub and dub releases of
    the same number are separate rows, and a database constraint guarantees
    no triple is stored twice even if two jobs race.

    Providers:
    ----------
    `providers` is a comma-joined list of the streaming sources that carry
    this episode ("gogoanime,zoro"). It only grows: a provider that lists an
    episode already stored is appended, and nothing is ever removed.
    title/description/image keep the values of the first provider that
    reported the episode.
    """

    __tablename__ = "episodes"

    anime_id: Mapped[str] = mapped_column(
        ForeignKey("animes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Anime this episode belongs to"
    )

    number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Episode number"
    )

    dub: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="True for the dubbed variant, False for sub"
    )

    providers: Mapped[str] = mapped_column(
        String500,
        nullable=False,
        comment="Comma-joined provider names"
    )

    title: Mapped[str | None] = mapped_column(
        String500,
        nullable=True,
        comment="Episode title"
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Episode synopsis"
    )

    image: Mapped[str | None] = mapped_column(
        String500,
        nullable=True,
        comment="Episode thumbnail URL"
    )

    released_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        index=True,
        comment="Upstream release time, or discovery time when unknown (UTC)"
    )
    # Indexed for the intelligent check ("latest episode") and the feed

    # ================================
    # Relationships
    # ================================

    anime: Mapped["Anime"] = relationship(
        "Anime",
        back_populates="episodes",
    )

    __table_args__ = (
        UniqueConstraint(
            "anime_id",
            "number",
            "dub",
            name="uq_episode_anime_number_dub"
        ),
    )

    @property
    def provider_list(self) -> list[str]:
        """Provider names as a list."""
        return [p for p in self.providers.split(",") if p]

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Episode(anime_id={self.anime_id!r}, number={self.number}, "
            f"dub={self.dub}, providers={self.providers!r})"
        )
