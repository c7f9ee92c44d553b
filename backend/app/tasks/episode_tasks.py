"""
Celery tasks for episode checks and cleanup.

This module contains the jobs that:
- Check every RELEASING anime for new episodes (Default-Check,
  Intelligent-Daily-Check)
- Check only anime whose last episode falls in the intelligent window
  (Intelligent-Check)
- Delete FINISHED anime (Daily-Cleanup)

Episode checks are throttled: EPISODE_CHECK_BATCH_SIZE anime are checked,
then the job pauses EPISODE_CHECK_BATCH_DELAY_SECONDS before the next batch.
"""

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import report_exception
from app.core.rate_limit import throttled
from app.db.session import AsyncSessionLocal
from app.schemas.episode import AnimeSnapshot
from app.services.anime_store import AnimeStore
from app.services.consumet import ConsumetClient
from app.services.notifier import Notifier
from app.services.reconciler import EpisodeReconciler
from app.services.settings_store import SchedulerConfig
from app.services.status_updater import StatusUpdater
from app.tasks.job_helpers import JobName, resolve_config, run_async, run_guarded_job
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


# ========================================
# Helper Functions
# ========================================

def is_within(min_days: int, max_days: int, date: datetime, now: Optional[datetime] = None) -> bool:
    """
    Whether `date` is between `min_days` and `max_days` days away from now.

    Partial days round up, so an episode released 4 days and 1 hour ago is
    5 days old.
    """
    now = now or datetime.now(timezone.utc)
    diff_days = math.ceil(abs((now - date).total_seconds()) / SECONDS_PER_DAY)
    return min_days <= diff_days <= max_days


def needs_check(anime: AnimeSnapshot, window: Optional[Tuple[int, int]], now: datetime) -> bool:
    """Apply the intelligent window; anime without episodes are always checked."""
    if window is None or anime.latest_release is None:
        return True
    return is_within(window[0], window[1], anime.latest_release, now)


async def check_anime(
    anime: AnimeSnapshot,
    reconciler: EpisodeReconciler,
    notifier: Notifier,
) -> Dict[str, int]:
    """Reconcile one anime and notify subscribers about each new episode."""
    new_episodes = await reconciler.reconcile(anime, anime.known_episodes)

    failed_notifications = 0
    for episode in new_episodes:
        report = await notifier.notify(anime, episode)
        failed_notifications += report.failed

    return {"new_episodes": len(new_episodes), "notifications_failed": failed_notifications}


async def perform_anime_check(
    db: AsyncSession,
    config: SchedulerConfig,
    window: Optional[Tuple[int, int]] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Dict[str, Any]:
    """
    Check RELEASING anime for new episodes.

    Args:
        db: Database session
        config: Scheduling policy for this run
        window: (min_days, max_days) for the intelligent check, None for all
        http_client: Shared HTTP client (created per run when None)
        sleep: Sleep used between batches

    Returns:
        Counts for the run
    """
    store = AnimeStore(db)
    now = datetime.now(timezone.utc)

    # Snapshot before any write: a rollback expires every loaded row
    snapshots = [AnimeSnapshot.capture(anime) for anime in await store.list_releasing_with_episodes()]
    due = [anime for anime in snapshots if needs_check(anime, window, now)]

    logger.info(f"Checking {len(due)} of {len(snapshots)} releasing anime")

    totals = {"new_episodes": 0, "notifications_failed": 0, "failed": 0}
    async with ConsumetClient(client=http_client) as consumet, Notifier(store, client=http_client) as notifier:
        status_updater = StatusUpdater(store, consumet, config.title_type)
        reconciler = EpisodeReconciler(store, consumet, status_updater)

        async for anime in throttled(
            due,
            settings.EPISODE_CHECK_BATCH_SIZE,
            settings.EPISODE_CHECK_BATCH_DELAY_SECONDS,
            sleep=sleep,
        ):
            try:
                outcome = await check_anime(anime, reconciler, notifier)
                totals["new_episodes"] += outcome["new_episodes"]
                totals["notifications_failed"] += outcome["notifications_failed"]
            except Exception as e:
                report_exception(e, anime_id=anime.id, operation="check_anime")
                totals["failed"] += 1

    return {"releasing": len(snapshots), "checked": len(due), **totals}


async def perform_daily_cleanup(db: AsyncSession) -> Dict[str, int]:
    """Delete every FINISHED anime."""
    deleted = await AnimeStore(db).delete_finished()
    logger.info(f"Deleted {deleted} finished anime")
    return {"deleted": deleted}


# ========================================
# Main Tasks
# ========================================

@celery_app.task(name="episodes.default_check", bind=True)
def default_check(self, config: Optional[dict] = None) -> dict:
    """Check every RELEASING anime (used when intelligent checks are off)."""

    async def _check() -> Dict[str, Any]:
        async with AsyncSessionLocal() as db:
            resolved = await resolve_config(db, config)
            return await perform_anime_check(db, resolved)

    return run_async(run_guarded_job(JobName.DEFAULT_CHECK, _check))


@celery_app.task(name="episodes.intelligent_check", bind=True)
def intelligent_check(self, config: Optional[dict] = None) -> dict:
    """
    Check RELEASING anime whose latest episode is INTELLIGENT_MIN_DAYS to
    INTELLIGENT_MAX_DAYS days old.
    """

    async def _check() -> Dict[str, Any]:
        async with AsyncSessionLocal() as db:
            resolved = await resolve_config(db, config)
            window = (resolved.intelligent_min_days, resolved.intelligent_max_days)
            return await perform_anime_check(db, resolved, window=window)

    return run_async(run_guarded_job(JobName.INTELLIGENT_CHECK, _check))


@celery_app.task(name="episodes.intelligent_daily_check", bind=True)
def intelligent_daily_check(self, config: Optional[dict] = None) -> dict:
    """Daily full check that backs up the intelligent window."""

    async def _check() -> Dict[str, Any]:
        async with AsyncSessionLocal() as db:
            resolved = await resolve_config(db, config)
            return await perform_anime_check(db, resolved)

    return run_async(run_guarded_job(JobName.INTELLIGENT_DAILY_CHECK, _check))


@celery_app.task(name="maintenance.daily_cleanup", bind=True)
def daily_cleanup(self, config: Optional[dict] = None) -> dict:
    """Delete FINISHED anime together with their episodes and subscriptions."""

    async def _cleanup() -> Dict[str, Any]:
        async with AsyncSessionLocal() as db:
            return await perform_daily_cleanup(db)

    return run_async(run_guarded_job(JobName.DAILY_CLEANUP, _cleanup))
