"""
Logging setup shared by the API, the console runner and the mapping pipeline.

Pipeline progress is written through the ``datamapper.progress`` logger, so a
single stdout handler carries both diagnostic lines and the run's progress
feed.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Optional

# Client libraries that are chatty at INFO/DEBUG during a mapping run
NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "pymongo")

_is_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root and application loggers once per process.

    Args:
        level: Optional log level override (e.g., "DEBUG", "INFO").
    """
    global _is_configured

    if _is_configured:
        return

    log_level = (level or "INFO").upper()

    loggers = {"datamapper": {"level": log_level}}
    for name in NOISY_LOGGERS:
        loggers[name] = {"level": "WARNING"}

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "stream": "ext://sys.stdout",
                }
            },
            "loggers": loggers,
            "root": {
                "handlers": ["console"],
                "level": log_level,
            },
        }
    )

    logging.getLogger(__name__).debug("Logging configured at %s", log_level)
    _is_configured = True
