"""Centralized logging configuration."""

import logging

from config import settings

# Loggers for the FMS provider clients; tuned separately from the app level
# since a verbose provider floods the log with per-page fetch lines.
PROVIDER_LOGGERS = ("integrations",)

QUIET_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "uvicorn.access",
)


def setup_logging() -> None:
    """Configure logging for the application.

    Sets the root level from settings.LOG_LEVEL, the provider client level
    from settings.FMS_PROVIDER_LOG_LEVEL (falls back to LOG_LEVEL), and
    pins database and HTTP transport loggers to WARNING.
    """
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        level=getattr(logging, settings.LOG_LEVEL),
        force=True,
    )

    provider_level = settings.FMS_PROVIDER_LOG_LEVEL or settings.LOG_LEVEL
    for name in PROVIDER_LOGGERS:
        logging.getLogger(name).setLevel(getattr(logging, provider_level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
