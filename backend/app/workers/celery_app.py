"""
Celery application instance and configuration.

Beat runs a single periodic task, `scheduler.tick`, every minute. The tick
decides from the settings table which jobs are due (see app.tasks.scheduler),
so job cadences are never hardcoded here.
"""

from datetime import datetime, timezone

from celery import Celery, signals
from celery.schedules import crontab
from sentry_sdk.integrations.celery import CeleryIntegration

from app.core.config import settings
from app.core.errors import init_sentry
from app.core.logging import setup_logging
from app.db.session import AsyncSessionLocal
from app.services.settings_store import SettingsStore

# Create Celery application
celery_app = Celery(
    "ani_notify",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "app.tasks.scheduler",
        "app.tasks.episode_tasks",
        "app.tasks.anilist_tasks",
    ],
)

# Configure Celery
celery_app.conf.update(
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    result_serializer=settings.CELERY_RESULT_SERIALIZER,
    accept_content=settings.celery_accept_content_list,
    timezone=settings.TIMEZONE,
    enable_utc=settings.CELERY_ENABLE_UTC,
    task_track_started=True,
    task_time_limit=6 * 60 * 60,  # 6 hours (a throttled check of many anime is slow)
    task_soft_time_limit=int(5.5 * 60 * 60),
    result_expires=3600,  # 1 hour
    worker_hijack_root_logger=False,
)

# Celery Beat Schedule (Periodic Tasks)
celery_app.conf.beat_schedule = {
    'scheduler-tick': {
        'task': 'scheduler.tick',
        'schedule': crontab(),  # Every minute
        'options': {
            'queue': 'scheduler',
            'expires': settings.SCHEDULER_TICK_EXPIRES_SECONDS,
        },
    },
}

# Task routing
celery_app.conf.task_routes = {
    'scheduler.*': {'queue': 'scheduler'},
    'episodes.*': {'queue': 'episodes'},
    'maintenance.*': {'queue': 'episodes'},
    'anilist.*': {'queue': 'anilist'},
}


# ========================================
# Process Signals
# ========================================

@signals.setup_logging.connect
def configure_logging(**kwargs) -> None:
    """Use the application's structlog setup instead of Celery's logging."""
    setup_logging()


@signals.worker_process_init.connect
def init_worker_process(**kwargs) -> None:
    init_sentry(CeleryIntegration(monitor_beat_tasks=False))


@signals.beat_init.connect
def seed_settings_on_beat_start(**kwargs) -> None:
    """Make sure every runtime setting has a row before the first tick."""
    # app.tasks imports this module
    from app.tasks.job_helpers import run_async

    async def _seed() -> int:
        async with AsyncSessionLocal() as db:
            return await SettingsStore(db).seed_defaults()

    init_sentry(CeleryIntegration(monitor_beat_tasks=False))
    run_async(_seed())


# Header carrying the minute beat published a tick for
TICK_SCHEDULED_AT_HEADER = "scheduled_at"


@signals.before_task_publish.connect
def stamp_tick_schedule(sender=None, headers=None, **kwargs) -> None:
    """
    Record when beat published a scheduler tick.

    The worker evaluates crons against this time, not against the moment it
    gets around to running the tick.
    """
    if sender == "scheduler.tick" and headers is not None:
        headers.setdefault(TICK_SCHEDULED_AT_HEADER, datetime.now(timezone.utc).isoformat())
