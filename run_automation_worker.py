#!/usr/bin/env python
"""
Run the CourseHub automation worker pool as a standalone process.

Usage:
    python run_automation_worker.py

Stops gracefully on SIGINT/SIGTERM after in-flight jobs finish.
"""

import logging
import signal
import threading
from types import FrameType
from typing import Optional

from coursehub.core.config import settings
from coursehub.database import SessionLocal
from coursehub.services.automation_worker import AutomationWorkerPool

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("automation_worker")


def main() -> None:
    stop = threading.Event()

    def _handle_signal(signum: int, frame: Optional[FrameType]) -> None:
        logger.info(f"Received signal {signum}, shutting down")
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    pool = AutomationWorkerPool(SessionLocal)
    logger.info(
        f"Starting automation worker in {settings.environment} "
        f"(concurrency={settings.jobs_concurrency}, poll={settings.jobs_poll_interval}s)"
    )
    pool.start()
    try:
        stop.wait()
    finally:
        pool.stop()


if __name__ == "__main__":
    main()
