"""
Background scheduling for the outbox processor.

One APScheduler job runs a sweep every interval on a single worker thread, so
sweeps never overlap. Shutdown stops further ticks and waits for a sweep that
is already running; an external call in progress is never interrupted.
"""
import atexit
import os
import threading
from datetime import timedelta

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from dojo.datetime_utils import utcnow
from dojo.logging_config import get_logger

logger = get_logger(__name__)

SWEEP_JOB_ID = "outbox_sweep"


class OutboxScheduler:
    """Owns the periodic sweep and exposes the operator actions."""

    def __init__(self, app, processor, interval_seconds=60, run_timeout_seconds=300, scheduler=None):
        self.app = app
        self.processor = processor
        self.interval_seconds = interval_seconds
        self.run_timeout_seconds = run_timeout_seconds
        self._scheduler = scheduler or BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(1)},
            timezone="UTC",
        )
        self._lock = threading.Lock()
        self._started = False

    @property
    def running(self):
        return self._started

    def start(self):
        with self._lock:
            if self._started:
                return
            self._scheduler.add_job(
                func=self.run_once,
                trigger="interval",
                seconds=self.interval_seconds,
                id=SWEEP_JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            self._scheduler.start()
            self._started = True

        logger.info("outbox_scheduler_started", interval_seconds=self.interval_seconds,
                    run_timeout_seconds=self.run_timeout_seconds)

    def shutdown(self, wait=True):
        """Stop scheduling sweeps; with wait=True, block until a running sweep returns."""
        with self._lock:
            if not self._started:
                return
            self._started = False
            self._scheduler.shutdown(wait=wait)

        logger.info("outbox_scheduler_stopped", waited=wait)

    def run_once(self):
        """
        Run one sweep in the app context.

        Errors are logged and swallowed so the next tick still happens.

        Returns:
            SweepResult, or None if the sweep failed
        """
        deadline = utcnow() + timedelta(seconds=self.run_timeout_seconds)
        try:
            with self.app.app_context():
                return self.processor.process_pending(deadline=deadline)
        except Exception as e:
            logger.error("outbox_background_process_failed", error=str(e), exc_info=True)
            return None

    def process_single(self, entry_id):
        with self.app.app_context():
            return self.processor.process_single(entry_id)

    def abandon_entry(self, entry_id):
        with self.app.app_context():
            return self.processor.abandon_entry(entry_id)


def init_scheduler(app, processor, scheduler=None):
    """
    Start the outbox worker if this process should own the queue.

    Only one process runs the worker: the reloader child in development
    (WERKZEUG_RUN_MAIN) or whichever process has RUN_OUTBOX_WORKER set.

    Returns:
        The started OutboxScheduler, or None
    """
    if not app.config.get("OUTBOX_ENABLED", True):
        logger.info("Outbox worker disabled by configuration")
        return None

    if os.environ.get("WERKZEUG_RUN_MAIN") != "true" and not os.environ.get("RUN_OUTBOX_WORKER"):
        logger.info("Skipping outbox worker startup on this process")
        return None

    outbox_scheduler = OutboxScheduler(
        app,
        processor,
        interval_seconds=app.config.get("OUTBOX_INTERVAL_SECONDS", 60),
        run_timeout_seconds=app.config.get("OUTBOX_RUN_TIMEOUT_SECONDS", 300),
        scheduler=scheduler,
    )
    outbox_scheduler.start()
    atexit.register(outbox_scheduler.shutdown)
    return outbox_scheduler
