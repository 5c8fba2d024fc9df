"""Logging configuration for the Compliance API."""

import logging
import sys

from compliance_api.core.settings import settings


def configure_logging(level: str | None = None) -> None:
    """Configure stdlib logging for the application.

    Args:
        level: Log level name. Defaults to ``settings.LOG_LEVEL``.
    """
    log_level = level or settings.LOG_LEVEL

    logging.basicConfig(
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level),
    )

    # httpx logs every request at INFO, including token endpoint calls
    logging.getLogger("httpx").setLevel(logging.WARNING)
