"""
Pydantic schemas for upstream payloads and internal result types.

Import all schemas here for easy access.
"""

from app.schemas.anilist import AiringPageResponse, MediaListResponse, UserLookupResponse
from app.schemas.consumet import (
    ConsumetAnimeInfo,
    ConsumetTitle,
    ProviderEpisode,
    provider_episodes_adapter,
)
from app.schemas.episode import AnimeInfo, AnimeSnapshot, DiscoveredEpisode, EpisodeKey

__all__ = [
    # AniList payloads
    "UserLookupResponse",
    "MediaListResponse",
    "AiringPageResponse",
    # Consumet payloads
    "ProviderEpisode",
    "provider_episodes_adapter",
    "ConsumetTitle",
    "ConsumetAnimeInfo",
    # Domain results
    "AnimeInfo",
    "AnimeSnapshot",
    "DiscoveredEpisode",
    "EpisodeKey",
]
