"""Background thread that runs the allocation checks on fixed cadences"""

import logging
import os
import sys
import threading
import time
from typing import Dict, Optional

from django.conf import settings
from django.db import close_old_connections

from realtime.notifications import RealtimeChannel
from realtime.push import PushSender, send_push_notification
from services.allocation_engine import AllocationJobs

logger = logging.getLogger(__name__)

# Checks run every fast tick (30s by default)
FAST_JOBS = ("expire_old_alerts", "start_accepted_allocations")
# Checks run every slow tick (60s by default)
SLOW_JOBS = ("expire_pending_allocations", "auto_complete_allocations")
ALL_JOBS = ("expire_old_alerts", "expire_pending_allocations", "start_accepted_allocations", "auto_complete_allocations")

_scheduler_instance: Optional["AllocationJobScheduler"] = None
_scheduler_lock = threading.Lock()


class AllocationJobScheduler:
    """
    Single timer thread driving the allocation checks.

    Checks of one tick run one after another. A check that is still running
    when it is due again (e.g. a manual pass overlapping the thread) is
    skipped for that tick.
    """

    def __init__(
        self,
        jobs: AllocationJobs,
        fast_interval: int = 30,
        slow_interval: int = 60,
        run_immediately: bool = True,
    ):
        self.jobs = jobs
        self.fast_interval = fast_interval
        self.slow_interval = slow_interval
        self.run_immediately = run_immediately
        self._locks: Dict[str, threading.Lock] = {name: threading.Lock() for name in ALL_JOBS}
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name="allocation-jobs")

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._stop_event.is_set()

    def start(self):
        if not self._thread.is_alive():
            logger.info(
                "Starting allocation jobs (fast=%ss slow=%ss)",
                self.fast_interval,
                self.slow_interval,
            )
            self._thread.start()

    def stop(self):
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None):
        self._thread.join(timeout)

    def run_job(self, name: str) -> bool:
        """
        Run one check unless the previous run of it is still going.

        Returns:
            True if the check ran, False if it was skipped
        """
        lock = self._locks[name]
        if not lock.acquire(blocking=False):
            logger.info("Allocation job %s still running; skipping this tick", name)
            return False
        try:
            getattr(self.jobs, name)()
        finally:
            lock.release()
        return True

    def run_all(self):
        for name in ALL_JOBS:
            self.run_job(name)
        close_old_connections()

    def _run(self):
        if self.run_immediately:
            self.run_all()

        last_slow_run = time.monotonic()
        while not self._stop_event.wait(self.fast_interval):
            try:
                for name in FAST_JOBS:
                    self.run_job(name)

                if time.monotonic() - last_slow_run >= self.slow_interval:
                    last_slow_run = time.monotonic()
                    for name in SLOW_JOBS:
                        self.run_job(name)
            except Exception:  # pragma: no cover - best effort logging
                logger.exception("Allocation job scheduler encountered an error")
            finally:
                # Close stale DB connections for long-running workers
                close_old_connections()


def start_allocation_jobs(
    channel: Optional[RealtimeChannel] = None,
    push_sender: PushSender = send_push_notification,
    fast_interval: Optional[int] = None,
    slow_interval: Optional[int] = None,
    run_immediately: bool = True,
) -> AllocationJobScheduler:
    """
    Build the allocation checks around the given channel and start the timer thread.

    The thread runs one pass of all four checks right away, then keeps the
    fast and slow cadences.
    """
    jobs = AllocationJobs(channel=channel, push_sender=push_sender)
    scheduler = AllocationJobScheduler(
        jobs,
        fast_interval=fast_interval or getattr(settings, "ALLOCATION_FAST_INTERVAL", 30),
        slow_interval=slow_interval or getattr(settings, "ALLOCATION_SLOW_INTERVAL", 60),
        run_immediately=run_immediately,
    )
    scheduler.start()
    return scheduler


def get_allocation_job_scheduler() -> Optional[AllocationJobScheduler]:
    return _scheduler_instance


def get_or_start_allocation_jobs(**kwargs) -> AllocationJobScheduler:
    """
    Return the process-wide scheduler, starting it on first use.

    Keyword arguments are passed to start_allocation_jobs() and are ignored
    when a scheduler is already running in this process.
    """
    global _scheduler_instance

    with _scheduler_lock:
        if _scheduler_instance is not None and _scheduler_instance.is_running:
            logger.info("Allocation jobs already running in this process; reusing them")
            return _scheduler_instance
        _scheduler_instance = start_allocation_jobs(**kwargs)
        return _scheduler_instance


def _is_worker_or_command_process() -> bool:
    """True for Celery processes and manage.py commands other than runserver."""
    program = os.path.basename(sys.argv[0]) if sys.argv else ""
    if "celery" in program:
        return True
    if program == "manage.py":
        return len(sys.argv) < 2 or sys.argv[1] != "runserver"
    return False


def autostart_allocation_jobs():
    """Start the in-process scheduler in server processes when ALLOCATION_JOBS_AUTOSTART is enabled."""
    if not getattr(settings, "ALLOCATION_JOBS_AUTOSTART", False):
        return

    # Avoid double-start in Django's autoreload parent process
    run_main = os.environ.get("RUN_MAIN")
    if run_main not in (None, "true"):
        return

    # Migrations, shells and Celery workers/beat must not run the checks
    if _is_worker_or_command_process():
        return

    get_or_start_allocation_jobs(channel=RealtimeChannel())
