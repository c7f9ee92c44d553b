"""
Pydantic schemas for the AniList GraphQL responses the engine reads.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ========================================
# User lookup
# ========================================

class AniListUser(_Lenient):
    id: int


class UserLookupData(_Lenient):
    User: Optional[AniListUser] = None


class UserLookupResponse(_Lenient):
    data: Optional[UserLookupData] = None


# ========================================
# Media lists
# ========================================

class MediaListEntry(_Lenient):
    mediaId: int


class MediaList(_Lenient):
    entries: List[MediaListEntry] = []


class MediaListCollectionPayload(_Lenient):
    lists: List[MediaList] = []


class MediaListData(_Lenient):
    MediaListCollection: Optional[MediaListCollectionPayload] = None


class MediaListResponse(_Lenient):
    data: Optional[MediaListData] = None


# ========================================
# Airing schedule
# ========================================

class AiringMedia(_Lenient):
    id: int
    status: Optional[str] = None


class AiringSchedule(_Lenient):
    media: Optional[AiringMedia] = None


class PageInfo(_Lenient):
    hasNextPage: bool = False


class AiringPage(_Lenient):
    pageInfo: PageInfo = PageInfo()
    airingSchedules: List[AiringSchedule] = []


class AiringPageData(_Lenient):
    Page: AiringPage


class AiringPageResponse(_Lenient):
    data: AiringPageData
