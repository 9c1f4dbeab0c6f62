#!/usr/bin/env python3
"""Start the index sync Celery worker with suppressed security warnings for containers."""

import sys
import warnings

warnings.filterwarnings("ignore", category=UserWarning, message=".*superuser privileges.*")
warnings.filterwarnings("ignore", category=RuntimeWarning, message=".*superuser privileges.*")

from app.core.config import get_settings  # noqa: E402
from app.core.logging_config import setup_logging  # noqa: E402
from app.workers.celery_app import INDEXING_QUEUE, celery_app  # noqa: E402

if __name__ == "__main__":
    setup_logging(get_settings().log_level)
    celery_app.worker_main(
        argv=[
            "worker",
            "--loglevel=info",
            f"--queues={INDEXING_QUEUE}",
            "--pool=solo",
            "--without-mingle",
            "--without-gossip",
        ]
        + sys.argv[1:]
    )
