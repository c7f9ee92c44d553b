"""
Tests for the scheduled-job boundary: overlap lock, error isolation, config.
"""

from dataclasses import asdict
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, LockError
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.settings_store import SchedulerConfig, SettingKey, SettingsStore
from app.tasks.job_helpers import JobName, LOCK_PREFIX, resolve_config, run_guarded_job


def mock_redis(acquired=True):
    lock = MagicMock()
    lock.acquire = AsyncMock(return_value=acquired)
    lock.release = AsyncMock()
    redis = MagicMock()
    redis.lock.return_value = lock
    return redis, lock


def test_job_slugs():
    assert JobName.INTELLIGENT_DAILY_CHECK.slug == "intelligent-daily-check"
    assert JobName.ANILIST_UPDATE.slug == "anilist-update"
    assert str(JobName.AUTO_REGISTER) == "Auto-Register"


@pytest.mark.asyncio
async def test_runs_work_under_lock():
    redis, lock = mock_redis()
    work = AsyncMock(return_value={"checked": 3})

    with patch("app.tasks.job_helpers.get_redis", AsyncMock(return_value=redis)):
        result = await run_guarded_job(JobName.DEFAULT_CHECK, work, lock_timeout=60)

    assert result["success"] is True
    assert result["skipped"] is False
    assert result["job"] == "Default-Check"
    assert result["checked"] == 3
    redis.lock.assert_called_once_with(f"{LOCK_PREFIX}default-check", timeout=60, blocking=False)
    lock.release.assert_awaited_once()


@pytest.mark.asyncio
async def test_overlapping_run_is_skipped():
    redis, lock = mock_redis(acquired=False)
    work = AsyncMock(return_value={})

    with patch("app.tasks.job_helpers.get_redis", AsyncMock(return_value=redis)):
        result = await run_guarded_job(JobName.INTELLIGENT_CHECK, work)

    assert result == {
        "success": True,
        "job": "Intelligent-Check",
        "skipped": True,
        "reason": "already_running",
    }
    work.assert_not_awaited()
    lock.release.assert_not_awaited()


@pytest.mark.asyncio
async def test_failing_work_is_reported_and_lock_released():
    redis, lock = mock_redis()
    work = AsyncMock(side_effect=RuntimeError("consumet is down"))

    with patch("app.tasks.job_helpers.get_redis", AsyncMock(return_value=redis)), \
         patch("app.tasks.job_helpers.report_exception") as mock_report:
        result = await run_guarded_job(JobName.DAILY_CLEANUP, work)

    assert result["success"] is False
    assert result["error"] == "consumet is down"
    mock_report.assert_called_once()
    assert mock_report.call_args.kwargs["job"] == "Daily-Cleanup"
    lock.release.assert_awaited_once()


@pytest.mark.asyncio
async def test_unreachable_redis_skips_run():
    work = AsyncMock(return_value={})

    with patch("app.tasks.job_helpers.get_redis", AsyncMock(side_effect=RedisConnectionError("refused"))), \
         patch("app.tasks.job_helpers.report_exception") as mock_report:
        result = await run_guarded_job(JobName.ANILIST_UPDATE, work)

    assert result["success"] is False
    assert result["reason"] == "lock_unavailable"
    work.assert_not_awaited()
    mock_report.assert_called_once()


@pytest.mark.asyncio
async def test_expired_lock_does_not_fail_the_run():
    redis, lock = mock_redis()
    lock.release.side_effect = LockError("Cannot release an unlocked lock")

    with patch("app.tasks.job_helpers.get_redis", AsyncMock(return_value=redis)):
        result = await run_guarded_job(JobName.AUTO_REGISTER, AsyncMock(return_value={"added": 0}))

    assert result["success"] is True


# ========================================
# resolve_config
# ========================================

@pytest.mark.asyncio
async def test_resolve_config_prefers_dispatched_config(db: AsyncSession):
    await SettingsStore(db).set(SettingKey.TITLE_TYPE, "native")
    dispatched = SchedulerConfig.defaults()

    resolved = await resolve_config(db, asdict(dispatched))

    assert resolved == dispatched


@pytest.mark.asyncio
async def test_resolve_config_reads_settings_when_started_by_hand(db: AsyncSession):
    await SettingsStore(db).set(SettingKey.TITLE_TYPE, "native")

    resolved = await resolve_config(db)

    assert resolved.title_type == "native"
