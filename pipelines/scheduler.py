"""Background scheduling of crawl worker runs (APScheduler)."""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR

logger = logging.getLogger(__name__)

WORKER_JOB_ID = "pagewise_crawl_worker"


class WorkerScheduler:
    """Runs the crawl worker as one-shot jobs under a single job id.

    Scheduling while a run is already pending is a no-op, so repeated
    requests never stack up worker runs. Requests made while a run is in
    progress (including the worker rescheduling itself) are held back and
    submitted once that run has finished; a one-shot job firing during the
    current run would otherwise be dropped by the ``max_instances`` limit.
    """

    def __init__(self, job: Callable[[], object], scheduler: Optional[BackgroundScheduler] = None):
        self.job = job
        self.scheduler = scheduler or BackgroundScheduler(
            job_defaults={'coalesce': True, 'max_instances': 1}
        )
        self._lock = threading.Lock()
        self._active = False
        self._deferred: Optional[float] = None
        self.scheduler.add_listener(self._job_executed, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._job_error, EVENT_JOB_ERROR)

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Worker scheduler started")

    def shutdown(self, wait: bool = False):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Worker scheduler shutdown complete")

    def pending(self) -> bool:
        with self._lock:
            if self._deferred is not None:
                return True
        return self.scheduler.get_job(WORKER_JOB_ID) is not None

    def schedule(self, delay_seconds: float = 0) -> bool:
        """Schedule one worker run; False when one is already pending."""
        delay_seconds = max(0.0, delay_seconds)
        with self._lock:
            if self._active:
                if self._deferred is not None:
                    logger.debug("Worker run already scheduled")
                    return False
                self._deferred = delay_seconds
                logger.debug(f"Worker run in progress, next run deferred ({delay_seconds}s)")
                return True

        if self.scheduler.get_job(WORKER_JOB_ID) is not None:
            logger.debug("Worker run already scheduled")
            return False

        run_date = datetime.now() + timedelta(seconds=delay_seconds)
        self.scheduler.add_job(
            self._run,
            'date',
            run_date=run_date,
            id=WORKER_JOB_ID,
            name="pagewise crawl worker",
            replace_existing=True,
        )
        logger.info(f"Worker run scheduled at {run_date:%Y-%m-%d %H:%M:%S}")
        return True

    def _run(self):
        with self._lock:
            self._active = True
        return self.job()

    def _run_finished(self):
        # Listeners fire after the executor has released the job instance.
        with self._lock:
            self._active = False
            delay, self._deferred = self._deferred, None
        if delay is not None:
            self.schedule(delay)

    def _job_executed(self, event):
        if event.job_id != WORKER_JOB_ID:
            return
        logger.debug(f"Worker job {event.job_id} executed")
        self._run_finished()

    def _job_error(self, event):
        if event.job_id != WORKER_JOB_ID:
            return
        logger.error(f"Worker job {event.job_id} failed: {event.exception}")
        self._run_finished()
