"""
Error reporting sink.

Every place that swallows an exception locally (a failed provider fetch, a
unique-constraint conflict, one bad item in a batch) hands it to
report_exception() so it is logged with context and, when SENTRY_DSN is set,
sent to Sentry.
"""

from typing import Any

import sentry_sdk

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


def init_sentry(*integrations: Any) -> bool:
    """
    Initialize Sentry if a DSN is configured.

    Args:
        integrations: Extra Sentry integrations (e.g. CeleryIntegration())

    Returns:
        True if Sentry was initialized
    """
    if not settings.SENTRY_DSN:
        logger.info("sentry_disabled", reason="SENTRY_DSN not set")
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.APP_ENV,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=list(integrations),
    )
    logger.info("sentry_initialized", environment=settings.APP_ENV)
    return True


def report_exception(exc: BaseException, **context: Any) -> None:
    """
    Report a locally handled exception.

    Args:
        exc: The exception that was caught
        **context: Identifiers that help reproduce the failure
            (anime_id, provider, job, ...)
    """
    logger.error(
        "exception_reported",
        error=str(exc),
        error_type=type(exc).__name__,
        **context,
    )

    with sentry_sdk.new_scope() as scope:
        if context:
            scope.set_context("details", context)
        sentry_sdk.capture_exception(exc)
