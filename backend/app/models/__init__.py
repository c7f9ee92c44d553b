"""
Database Models

This module contains all SQLAlchemy ORM models for the application.

Import Structure:
-----------------
Import models from this module to ensure they're registered with SQLAlchemy:

    from app.models import Anime, Episode, Setting, User

This ensures that:
1. Alembic can detect all models for migrations
2. Relationships (which reference each other by name) resolve
"""

from app.models.anime import Anime, AnimeStatus, Episode, user_animes
from app.models.setting import Setting
from app.models.user import User

__all__ = [
    # Anime models
    "Anime",
    "Episode",
    "user_animes",
    # User models
    "User",
    # Settings
    "Setting",
    # Enums
    "AnimeStatus",
]
