"""
Celery tasks that talk to AniList.

- AniList-Update: subscribe every linked user to the anime on their
  PLANNING and CURRENT lists (ANILIST_SYNC_BATCH_SIZE users per batch,
  ANILIST_SYNC_BATCH_DELAY_SECONDS between batches)
- Auto-Register: register anime airing in the next AUTO_REGISTER_CHECK_DAYS days
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import report_exception
from app.core.rate_limit import throttled
from app.db.session import AsyncSessionLocal
from app.services.anilist import AniListClient
from app.services.anime_service import AnimeRegistrationError, AnimeService, build_anime_service
from app.services.anime_store import AnimeStore
from app.services.consumet import ConsumetClient
from app.services.settings_store import SchedulerConfig
from app.tasks.job_helpers import JobName, resolve_config, run_async, run_guarded_job
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ========================================
# Helper Functions
# ========================================

async def sync_user_lists(
    service: AnimeService,
    anilist: AniListClient,
    user_id: str,
    anilist_id: str,
    subscribed: Set[str],
) -> Dict[str, int]:
    """
    Subscribe one user to every PLANNING/CURRENT entry they are not yet subscribed to.

    Entries that cannot be registered (not found, finished) are counted,
    not raised.
    """
    resolved_id = await anilist.get_user_id(anilist_id)
    if resolved_id is None:
        return {"added": 0, "failed": 0}

    listed: List[str] = []
    for status in AniListClient.SYNCED_LIST_STATUSES:
        for anime_id in await anilist.get_list(resolved_id, status):
            if anime_id not in listed:
                listed.append(anime_id)

    added = 0
    failed = 0
    for anime_id in listed:
        if anime_id in subscribed:
            continue
        try:
            if await service.add_anime_to_user(anime_id, user_id):
                added += 1
        except AnimeRegistrationError as e:
            logger.info(f"Skipped {anime_id} for user {user_id}: {e}")
            failed += 1
        except Exception as e:
            report_exception(e, user_id=user_id, anime_id=anime_id, operation="sync_user_lists")
            failed += 1

    return {"added": added, "failed": failed}


async def perform_user_update(
    db: AsyncSession,
    config: SchedulerConfig,
    http_client: Optional[httpx.AsyncClient] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Dict[str, Any]:
    """Sync the AniList lists of every user with a linked account."""
    store = AnimeStore(db)
    # Plain values: a rollback inside the loop expires loaded rows
    users = [(user.id, user.anilist_id) for user in await store.users_with_anilist()]

    totals = {"users": len(users), "added": 0, "failed": 0, "users_failed": 0}
    async with AniListClient(client=http_client) as anilist, ConsumetClient(client=http_client) as consumet:
        service = build_anime_service(store, consumet, config.title_type)

        async for user_id, anilist_id in throttled(
            users,
            settings.ANILIST_SYNC_BATCH_SIZE,
            settings.ANILIST_SYNC_BATCH_DELAY_SECONDS,
            sleep=sleep,
        ):
            try:
                subscribed = await store.subscribed_anime_ids(user_id)
                outcome = await sync_user_lists(service, anilist, user_id, anilist_id, subscribed)
                totals["added"] += outcome["added"]
                totals["failed"] += outcome["failed"]
            except Exception as e:
                report_exception(e, user_id=user_id, operation="perform_user_update")
                totals["users_failed"] += 1

    return totals


async def perform_new_anime_check(
    db: AsyncSession,
    config: SchedulerConfig,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """Register untracked anime airing within AUTO_REGISTER_CHECK_DAYS days."""
    store = AnimeStore(db)
    async with AniListClient(client=http_client) as anilist, ConsumetClient(client=http_client) as consumet:
        service = build_anime_service(store, consumet, config.title_type)
        summary = await service.register_airing(anilist, config.auto_register_check_days)
    return summary.as_dict()


# ========================================
# Main Tasks
# ========================================

@celery_app.task(name="anilist.update_users", bind=True)
def update_anilist_users(self, config: Optional[dict] = None) -> dict:
    """Subscribe linked users to their PLANNING and CURRENT AniList entries."""

    async def _update() -> Dict[str, Any]:
        async with AsyncSessionLocal() as db:
            resolved = await resolve_config(db, config)
            return await perform_user_update(db, resolved)

    return run_async(run_guarded_job(JobName.ANILIST_UPDATE, _update))


@celery_app.task(name="anilist.auto_register", bind=True)
def auto_register(self, config: Optional[dict] = None) -> dict:
    """Register anime that are about to air."""

    async def _register() -> Dict[str, Any]:
        async with AsyncSessionLocal() as db:
            resolved = await resolve_config(db, config)
            return await perform_new_anime_check(db, resolved)

    return run_async(run_guarded_job(JobName.AUTO_REGISTER, _register))
