"""Business logic services."""

from app.services.anilist import AniListClient
from app.services.anime_service import (
    AnimeFinishedError,
    AnimeNotFoundError,
    AnimeRegistrationError,
    AnimeService,
    build_anime_service,
)
from app.services.anime_store import AnimeStore
from app.services.consumet import ConsumetClient
from app.services.notifier import DeliveryReport, Notifier
from app.services.reconciler import EpisodeReconciler
from app.services.settings_store import SchedulerConfig, SettingKey, SettingsStore
from app.services.status_updater import StatusUpdater

__all__ = [
    "AniListClient",
    "AnimeService",
    "build_anime_service",
    "AnimeRegistrationError",
    "AnimeNotFoundError",
    "AnimeFinishedError",
    "AnimeStore",
    "ConsumetClient",
    "DeliveryReport",
    "Notifier",
    "EpisodeReconciler",
    "SchedulerConfig",
    "SettingKey",
    "SettingsStore",
    "StatusUpdater",
]
