"""Process-wide logging setup shared by the API and the Celery worker."""

from __future__ import annotations

import logging
import logging.config

_initialized = False

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_level: str = "INFO") -> None:
    """Attach a console handler to the ``app`` logger tree.

    Safe to call more than once; only the first call configures handlers.
    """
    global _initialized
    if _initialized:
        return

    log_level = log_level.upper()
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "app": {"level": log_level, "handlers": ["console"], "propagate": False},
            # Elasticsearch transport logs every request at INFO
            "elastic_transport": {"level": "WARNING"},
        },
    }
    logging.config.dictConfig(config)
    _initialized = True

    logging.getLogger(__name__).info(f"Logging initialized - Level: {log_level}")
