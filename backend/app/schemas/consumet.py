"""
Pydantic schemas for Consumet API responses.

Only the fields the engine uses are declared; everything else in the upstream
payload is ignored. Validation failures are treated by the client as "no data".
"""

from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
)


class ProviderEpisode(BaseModel):
    """One entry of GET /meta/anilist/episodes/{id}."""

    model_config = ConfigDict(extra="ignore")

    number: int
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    released_at: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("createdAt", "releasedAt", "released_at"),
    )

    @field_validator("released_at", mode="wrap")
    @classmethod
    def lenient_release_date(cls, v: Any, handler: ValidatorFunctionWrapHandler) -> Optional[datetime]:
        """Unparseable dates become None (the caller falls back to 'now')."""
        if v in (None, ""):
            return None
        try:
            return handler(v)
        except ValidationError:
            return None


provider_episodes_adapter = TypeAdapter(List[ProviderEpisode])


class ConsumetTitle(BaseModel):
    """Title object of GET /meta/anilist/info/{id}."""

    model_config = ConfigDict(extra="ignore")

    english: Optional[str] = None
    romaji: Optional[str] = None
    native: Optional[str] = None
    userPreferred: Optional[str] = None


class ConsumetAnimeInfo(BaseModel):
    """Subset of GET /meta/anilist/info/{id}."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: Union[ConsumetTitle, str, None] = None
    status: Optional[str] = None
    total_episodes: Optional[int] = Field(
        None,
        validation_alias=AliasChoices("totalEpisodes", "total_episodes"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """AniList ids arrive as numbers or strings."""
        if isinstance(v, int):
            return str(v)
        return v

    def title_for(self, title_type: str) -> Optional[str]:
        """Pick the title variant named by the TITLE_TYPE setting."""
        if self.title is None or isinstance(self.title, str):
            return self.title
        return getattr(self.title, title_type, None)
