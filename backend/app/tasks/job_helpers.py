"""
Shared plumbing for scheduled jobs.

- run_async(): runs a job coroutine from a (synchronous) Celery task
- run_guarded_job(): per-job overlap lock, Sentry cron check-in and the
  catch-all boundary that keeps one failing run from affecting the next
- resolve_config(): the SchedulerConfig a job runs with
"""

import asyncio
import enum
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import sentry_sdk
from redis.exceptions import LockError, RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import report_exception
from app.db.redis import close_redis, get_redis
from app.db.session import engine
from app.services.settings_store import SchedulerConfig, SettingsStore

logger = logging.getLogger(__name__)

LOCK_PREFIX = "ani-notify:job:"


class JobName(str, enum.Enum):
    """Names of the recurring jobs (also used for locks and monitors)."""

    DEFAULT_CHECK = "Default-Check"
    INTELLIGENT_CHECK = "Intelligent-Check"
    INTELLIGENT_DAILY_CHECK = "Intelligent-Daily-Check"
    DAILY_CLEANUP = "Daily-Cleanup"
    ANILIST_UPDATE = "AniList-Update"
    AUTO_REGISTER = "Auto-Register"

    def __str__(self) -> str:
        return self.value

    @property
    def slug(self) -> str:
        return self.value.lower()


# ========================================
# Event loop handling
# ========================================

async def _run_and_cleanup(coro: Awaitable[Any]) -> Any:
    try:
        return await coro
    finally:
        # Pooled connections are bound to this event loop, which is about to close
        await close_redis()
        await engine.dispose()


def run_async(coro: Awaitable[Any]) -> Any:
    """
    Run async coroutine in Celery task context.

    Each call gets a fresh event loop; database and Redis connections opened
    inside it are released before it closes.
    """
    return asyncio.run(_run_and_cleanup(coro))


# ========================================
# Job boundary
# ========================================

async def run_guarded_job(
    job: JobName,
    work: Callable[[], Awaitable[Dict[str, Any]]],
    lock_timeout: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Run one job invocation.

    1. Take a non-blocking Redis lock named after the job; if another run of
       the same job holds it, log and return without doing anything
    2. Run `work()` inside a Sentry cron monitor
    3. Catch and report anything it raises

    Returns:
        Result dict with 'success', 'job', 'skipped' plus whatever `work`
        returned. Never raises.
    """
    try:
        redis = await get_redis()
        lock = redis.lock(
            f"{LOCK_PREFIX}{job.slug}",
            timeout=lock_timeout or settings.JOB_LOCK_TIMEOUT_SECONDS,
            blocking=False,
        )
        acquired = await lock.acquire()
    except RedisError as e:
        report_exception(e, job=job.value, operation="acquire_lock")
        return {"success": False, "job": job.value, "skipped": True, "reason": "lock_unavailable"}

    if not acquired:
        logger.info(f"{job.value} is already running, skipping this run")
        return {"success": True, "job": job.value, "skipped": True, "reason": "already_running"}

    started = time.monotonic()
    logger.info(f"{job.value} started")
    try:
        with sentry_sdk.monitor(monitor_slug=job.slug):
            result = await work()

        duration = round(time.monotonic() - started, 2)
        logger.info(f"{job.value} finished in {duration}s: {result}")
        return {"success": True, "job": job.value, "skipped": False, "duration_seconds": duration, **result}

    except Exception as e:
        report_exception(e, job=job.value)
        return {"success": False, "job": job.value, "skipped": False, "error": str(e)}

    finally:
        try:
            await lock.release()
        except LockError:
            logger.warning(f"{job.value} lock expired before the job finished")
        except RedisError as e:
            report_exception(e, job=job.value, operation="release_lock")


async def resolve_config(db: AsyncSession, config: Optional[Dict[str, Any]] = None) -> SchedulerConfig:
    """
    The SchedulerConfig for a job run.

    Uses the config the scheduler tick dispatched with, or reads the
    settings table when the job was started by hand.
    """
    if config:
        return SchedulerConfig(**config)
    return await SettingsStore(db).scheduler_config()
