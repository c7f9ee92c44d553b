"""
Celery tasks for background processing.
"""

from app.tasks.anilist_tasks import auto_register, update_anilist_users
from app.tasks.episode_tasks import (
    daily_cleanup,
    default_check,
    intelligent_check,
    intelligent_daily_check,
)
from app.tasks.scheduler import tick

__all__ = [
    "tick",
    "default_check",
    "intelligent_check",
    "intelligent_daily_check",
    "daily_cleanup",
    "update_anilist_users",
    "auto_register",
]
