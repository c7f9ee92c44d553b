"""
Environment variable validation.

This module validates that the required environment variables are properly
configured before the API or the Celery worker/beat start.
"""

import sys
from typing import List, Tuple
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


def validate_database_url() -> List[str]:
    """
    Validate database URL configuration.

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL is not set")
        return errors

    # Only async drivers work with the async engine
    if not settings.DATABASE_URL.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
        errors.append(
            "DATABASE_URL must use an async driver "
            "(postgresql+asyncpg://... or sqlite+aiosqlite://...)"
        )

    if settings.is_production and settings.DATABASE_URL.startswith("sqlite"):
        errors.append("DATABASE_URL must point to PostgreSQL in production")

    return errors


def validate_redis_url() -> List[str]:
    """
    Validate Redis URL configuration.

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    if not settings.REDIS_URL:
        errors.append("REDIS_URL is not set")
        return errors

    if not settings.REDIS_URL.startswith(("redis://", "rediss://")):
        errors.append(
            "REDIS_URL must start with redis:// (format: redis://host:port/db)"
        )

    return errors


def validate_upstream_urls() -> List[str]:
    """
    Validate the Consumet and AniList base URLs.

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    for name in ("CONSUMET_URL", "ANILIST_API_URL"):
        parsed = urlparse(getattr(settings, name))
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(f"{name} must be an absolute http(s) URL")

    if not settings.anime_providers_list:
        errors.append("ANIME_PROVIDERS must name at least one provider")

    return errors


def validate_scheduler_settings() -> List[str]:
    """
    Validate timezone and throttling settings.

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    try:
        ZoneInfo(settings.TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        errors.append(f"TIMEZONE '{settings.TIMEZONE}' is not a known IANA timezone")

    if settings.EPISODE_CHECK_BATCH_SIZE < 1 or settings.ANILIST_SYNC_BATCH_SIZE < 1:
        errors.append("Batch sizes must be at least 1")

    if settings.NOTIFY_MAX_CONCURRENCY < 1:
        errors.append("NOTIFY_MAX_CONCURRENCY must be at least 1")

    if settings.SCHEDULER_TICK_EXPIRES_SECONDS < 60:
        errors.append("SCHEDULER_TICK_EXPIRES_SECONDS must be at least 60 (one tick interval)")

    return errors


def validate_production_settings() -> List[str]:
    """
    Validate production-specific settings.

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    if not settings.is_production:
        return errors

    if settings.DEBUG:
        errors.append("DEBUG must be false in production")

    if not settings.SENTRY_DSN:
        logger.warning(
            "sentry_not_configured",
            message="SENTRY_DSN not set in production - error tracking disabled"
        )

    if settings.LOG_FORMAT != "json":
        logger.warning(
            "log_format_not_json",
            message="LOG_FORMAT should be 'json' in production for better log aggregation"
        )

    return errors


def validate_environment() -> Tuple[bool, List[str]]:
    """
    Validate all environment variables.

    Returns:
        (is_valid, list_of_errors)
    """
    all_errors = []

    logger.info(
        "validating_environment",
        app_env=settings.APP_ENV,
        app_name=settings.APP_NAME
    )

    all_errors.extend(validate_database_url())
    all_errors.extend(validate_redis_url())
    all_errors.extend(validate_upstream_urls())
    all_errors.extend(validate_scheduler_settings())
    all_errors.extend(validate_production_settings())

    if all_errors:
        logger.error(
            "environment_validation_failed",
            errors=all_errors,
            error_count=len(all_errors)
        )
        return False, all_errors

    logger.info(
        "environment_validation_successful",
        app_env=settings.APP_ENV,
        providers=settings.anime_providers_list,
        sentry=bool(settings.SENTRY_DSN),
    )
    return True, []


def validate_or_exit():
    """
    Validate environment and exit if validation fails.

    This should be called during application startup.
    """
    is_valid, errors = validate_environment()

    if not is_valid:
        logger.critical(
            "startup_aborted_invalid_environment",
            errors=errors
        )
        sys.exit(1)

    logger.info("environment_validation_passed")
