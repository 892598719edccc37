"""Logging configuration for the weather alert service."""
import logging
from logging.config import dictConfig

from app.core.settings import settings


def _build_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": level,
            }
        },
        "loggers": {
            # httpx logs every request at INFO; one line per location per cycle is noise
            "httpx": {"level": "WARNING"},
            "apscheduler": {"level": "WARNING"},
        },
        "root": {
            "handlers": ["console"],
            "level": level,
        },
    }


def setup_logging() -> logging.Logger:
    """Configure application-wide logging and return the app logger."""
    level = (settings.log_level or "INFO").upper()
    dictConfig(_build_config(level))
    logger = logging.getLogger("app")
    logger.debug("Logging configured at %s", level)
    return logger
