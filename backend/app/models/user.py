"""
User Model

Users subscribe to anime and receive a notification on each configured
channel (Discord webhook, ntfy topic) when a new episode is found.

Table: users
------------
- id: UUID string (generated on insert)
- username: unique handle
- anilist_id: optional AniList account; when set, the nightly AniList sync
  subscribes the user to every title on their PLANNING and CURRENT lists
- discord_webhook / ntfy_url: optional delivery channels

Accounts are created and edited by the (separate) API layer; the engine
only reads them, apart from adding subscriptions.
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, String36, String50, String500, TimestampMixin
from app.models.anime import user_animes

if TYPE_CHECKING:
    from app.models.anime import Anime


def _new_user_id() -> str:
    return str(uuid.uuid4())


class User(Base, TimestampMixin):
    """User account with notification targets and subscriptions."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String36,
        primary_key=True,
        default=_new_user_id,
        comment="User UUID"
    )

    username: Mapped[str] = mapped_column(
        String50,
        unique=True,
        nullable=False,
        comment="Unique username"
    )

    anilist_id: Mapped[str | None] = mapped_column(
        String50,
        nullable=True,
        index=True,
        comment="Linked AniList user id"
    )

    discord_webhook: Mapped[str | None] = mapped_column(
        String500,
        nullable=True,
        comment="Discord webhook URL"
    )

    ntfy_url: Mapped[str | None] = mapped_column(
        String500,
        nullable=True,
        comment="ntfy topic URL"
    )

    animes: Mapped[list["Anime"]] = relationship(
        "Anime",
        secondary=user_animes,
        back_populates="users",
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"User(id={self.id!r}, username={self.username!r})"
