"""
Settings-driven job scheduling.

Celery beat only knows one periodic task: `scheduler.tick`, every minute.
The tick reads the current SchedulerConfig from the settings table, works
out which jobs' cron expressions match the minute beat published the tick for
(in TIMEZONE) and dispatches them as their own Celery tasks. Changing a cron
setting therefore takes effect on the next minute without restarting beat. A
tick that waits in the queue still evaluates its own minute, so a late
midnight tick runs the daily jobs and a burst of late ticks dispatches each
minute once.

Job table:
----------
    Default-Check            CRON                 only when INTELLIGENT_CHECKS is off
    Intelligent-Check        INTELLIGENT_CRON     only when INTELLIGENT_CHECKS is on
    Intelligent-Daily-Check  0 0 * * *            only when INTELLIGENT_CHECKS is on
    Daily-Cleanup            0 0 * * *            always
    AniList-Update           ANILIST_UPDATE_CRON  always
    Auto-Register            AUTO_REGISTER_CRON   only when AUTO_REGISTER is on
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from celery.schedules import ParseException, crontab

from app.core.config import settings
from app.core.errors import report_exception
from app.db.session import AsyncSessionLocal
from app.services.settings_store import SchedulerConfig, SettingsStore
from app.tasks.anilist_tasks import auto_register, update_anilist_users
from app.tasks.episode_tasks import (
    daily_cleanup,
    default_check,
    intelligent_check,
    intelligent_daily_check,
)
from app.tasks.job_helpers import JobName, run_async
from app.workers.celery_app import TICK_SCHEDULED_AT_HEADER, celery_app

logger = logging.getLogger(__name__)

DAILY_CRON = "0 0 * * *"

JOB_TASKS = {
    JobName.DEFAULT_CHECK: default_check,
    JobName.INTELLIGENT_CHECK: intelligent_check,
    JobName.INTELLIGENT_DAILY_CHECK: intelligent_daily_check,
    JobName.DAILY_CLEANUP: daily_cleanup,
    JobName.ANILIST_UPDATE: update_anilist_users,
    JobName.AUTO_REGISTER: auto_register,
}


class InvalidCronExpression(ValueError):
    """Raised when a cron expression cannot be parsed."""
    pass


@dataclass(frozen=True)
class ScheduledJob:
    name: JobName
    cron: str


# ========================================
# Cron handling
# ========================================

def parse_cron(expression: str) -> crontab:
    """
    Parse a standard five-field cron expression.

    Raises:
        InvalidCronExpression: Wrong field count or unparseable field
    """
    fields = (expression or "").split()
    if len(fields) != 5:
        raise InvalidCronExpression(f"Expected 5 fields in cron expression '{expression}'")

    minute, hour, day_of_month, month_of_year, day_of_week = fields
    try:
        return crontab(
            minute=minute,
            hour=hour,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            day_of_week=day_of_week,
        )
    except (ParseException, ValueError) as e:
        raise InvalidCronExpression(f"Invalid cron expression '{expression}': {e}") from e


ALL_DAYS_OF_MONTH = frozenset(range(1, 32))
ALL_DAYS_OF_WEEK = frozenset(range(7))


def cron_matches(schedule: crontab, moment: datetime) -> bool:
    """
    Whether `moment` (already in the scheduling timezone) falls on the schedule.

    As in standard cron, when both day-of-month and day-of-week are
    restricted a day matching either one is enough.
    """
    if not (
        moment.minute in schedule.minute
        and moment.hour in schedule.hour
        and moment.month in schedule.month_of_year
    ):
        return False

    on_day_of_month = moment.day in schedule.day_of_month
    # crontab counts weekdays from Sunday = 0
    on_day_of_week = moment.isoweekday() % 7 in schedule.day_of_week

    if schedule.day_of_month != ALL_DAYS_OF_MONTH and schedule.day_of_week != ALL_DAYS_OF_WEEK:
        return on_day_of_month or on_day_of_week
    return on_day_of_month and on_day_of_week


def jobs_for(config: SchedulerConfig) -> List[ScheduledJob]:
    """The jobs enabled by a config, with their cadences."""
    jobs: List[ScheduledJob] = []

    if config.intelligent_checks:
        jobs.append(ScheduledJob(JobName.INTELLIGENT_CHECK, config.intelligent_cron))
        jobs.append(ScheduledJob(JobName.INTELLIGENT_DAILY_CHECK, DAILY_CRON))
    else:
        jobs.append(ScheduledJob(JobName.DEFAULT_CHECK, config.cron))

    jobs.append(ScheduledJob(JobName.DAILY_CLEANUP, DAILY_CRON))
    jobs.append(ScheduledJob(JobName.ANILIST_UPDATE, config.anilist_update_cron))

    if config.auto_register:
        jobs.append(ScheduledJob(JobName.AUTO_REGISTER, config.auto_register_cron))

    return jobs


def due_jobs(config: SchedulerConfig, moment: datetime) -> List[ScheduledJob]:
    """
    Jobs whose cron expression matches `moment`.

    A job with an invalid expression is reported and skipped; the others
    are unaffected.
    """
    due: List[ScheduledJob] = []
    for job in jobs_for(config):
        try:
            schedule = parse_cron(job.cron)
        except InvalidCronExpression as e:
            report_exception(e, job=job.name.value, cron=job.cron)
            continue

        if cron_matches(schedule, moment):
            due.append(job)
    return due


def current_minute(now: Optional[datetime] = None) -> datetime:
    """The minute of `now` (default: the current time) in the scheduling timezone."""
    tz = ZoneInfo(settings.TIMEZONE)
    moment = now.astimezone(tz) if now is not None else datetime.now(tz)
    return moment.replace(second=0, microsecond=0)


def dispatch(jobs: List[ScheduledJob], config: SchedulerConfig) -> List[Dict[str, str]]:
    """Queue one Celery task per due job, passing the config it was scheduled with."""
    dispatched = []
    for job in jobs:
        task = JOB_TASKS[job.name].apply_async(kwargs={"config": asdict(config)})
        dispatched.append({"job": job.name.value, "task_id": task.id})
        logger.info(f"Dispatched {job.name.value} (task: {task.id})")
    return dispatched


# ========================================
# Tick
# ========================================

def scheduled_time(request: Any) -> Optional[datetime]:
    """
    The time beat published a tick, read from its message headers.

    Returns None for ticks started some other way (by hand, or by a beat that
    does not stamp the header); the tick then uses the current time.
    """
    value = request.get(TICK_SCHEDULED_AT_HEADER) if request is not None else None
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed {TICK_SCHEDULED_AT_HEADER} header: {value!r}")
        return None


async def run_tick(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Resolve the config, find due jobs and dispatch them."""
    moment = current_minute(now)

    async with AsyncSessionLocal() as db:
        config = await SettingsStore(db).scheduler_config()

    due = due_jobs(config, moment)
    return {
        "success": True,
        "tick": moment.isoformat(),
        "dispatched": dispatch(due, config),
    }


@celery_app.task(name="scheduler.tick", bind=True)
def tick(self) -> dict:
    """
    Periodic task (every minute) that starts whichever jobs are due.

    Returns:
        Dictionary with the tick time and the dispatched jobs
    """
    try:
        return run_async(run_tick(scheduled_time(self.request)))
    except Exception as e:
        report_exception(e, task="scheduler.tick")
        return {"success": False, "error": str(e)}
