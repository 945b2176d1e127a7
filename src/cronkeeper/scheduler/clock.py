"""Trigger clock — one APScheduler tick per minute that fans out matching jobs.

The clock holds no per-job callbacks. Every tick it takes a registry snapshot,
evaluates each armed schedule against the current minute and submits the
matches to a worker pool. It never waits for a run to finish.
"""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import TYPE_CHECKING, Literal
from zoneinfo import ZoneInfo

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from cronkeeper.core.cron import floor_minute
from cronkeeper.core.executor import run_command
from cronkeeper.errors import PersistenceError

if TYPE_CHECKING:
    from cronkeeper.core.models import ExecutionRecord
    from cronkeeper.scheduler.recorder import RecorderContext
    from cronkeeper.scheduler.registry import ArmedJob, JobRegistry

logger = logging.getLogger(__name__)

OverlapPolicy = Literal["allow", "skip"]

_TICK_JOB_ID = "cronkeeper-tick"


def _log_crash(future: Future[ExecutionRecord]) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("Job run crashed before it could be recorded", exc_info=exc)


class ClockState(str, enum.Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    DISPATCHING = "dispatching"


class TriggerClock:
    """Minute-granularity driver dispatching armed jobs to worker threads."""

    def __init__(
        self,
        registry: JobRegistry,
        context: RecorderContext,
        *,
        max_workers: int = 20,
        overlap_policy: OverlapPolicy = "allow",
        timeout: float | None = None,
        shell: str = "bash",
        timezone: str = "",
        reconcile_on_tick: bool = True,
        misfire_grace_time: int = 30,
    ) -> None:
        self._registry = registry
        self._ctx = context
        self._overlap_policy = overlap_policy
        self._timeout = timeout
        self._shell = shell
        self._reconcile_on_tick = reconcile_on_tick
        self._tz = ZoneInfo(timezone) if timezone else None

        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="cronkeeper-run")
        self._scheduler = BackgroundScheduler(timezone=self._tz) if self._tz else BackgroundScheduler()
        self._scheduler.add_job(
            self.tick,
            CronTrigger(minute="*", timezone=self._tz) if self._tz else CronTrigger(minute="*"),
            id=_TICK_JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=misfire_grace_time,
        )

        self._running_ids: set[int] = set()
        self._running_lock = threading.Lock()
        self.state = ClockState.IDLE

    # -- Time -----------------------------------------------------------------

    def now(self) -> datetime:
        """Current wall-clock time in the configured zone, as a naive datetime."""
        if self._tz is None:
            return datetime.now()
        return datetime.now(self._tz).replace(tzinfo=None)

    # -- Tick -----------------------------------------------------------------

    def tick(self, now: datetime | None = None) -> list[Future[ExecutionRecord]]:
        """Evaluate every armed job for the current minute and dispatch matches.

        Returns the futures of the runs dispatched by this tick.
        """
        minute = floor_minute(now or self.now())
        self.state = ClockState.EVALUATING
        try:
            if self._reconcile_on_tick:
                try:
                    self._registry.reconcile()
                except PersistenceError:
                    logger.exception("Registry reconcile failed; using the previous job set")

            snapshot = self._registry.snapshot()
            due = [(job_id, job) for job_id, job in snapshot.items() if job.schedule.matches(minute)]
            logger.debug(
                "Tick %s: %d of %d armed job(s) due",
                minute.strftime("%Y-%m-%d %H:%M"),
                len(due),
                len(snapshot),
            )

            self.state = ClockState.DISPATCHING
            futures = []
            for job_id, job in due:
                future = self.dispatch(job_id, job)
                if future is not None:
                    futures.append(future)
            return futures
        finally:
            self.state = ClockState.IDLE

    def dispatch(self, job_id: int, job: ArmedJob) -> Future[ExecutionRecord] | None:
        """Submit one run without waiting for it.

        Returns None when the overlap policy skips the run or the pool is shut.
        """
        with self._running_lock:
            if self._overlap_policy == "skip" and job_id in self._running_ids:
                logger.warning("Job %d (%s) is still running, skipping this run", job_id, job.name)
                return None
            self._running_ids.add(job_id)

        try:
            future = self._pool.submit(self._execute, job_id, job)
        except RuntimeError:
            # pool already shut down
            self._release(job_id)
            logger.warning("Clock stopped, not dispatching job %d (%s)", job_id, job.name)
            return None
        future.add_done_callback(_log_crash)
        return future

    def _release(self, job_id: int) -> None:
        with self._running_lock:
            self._running_ids.discard(job_id)

    def _execute(self, job_id: int, job: ArmedJob) -> ExecutionRecord:
        logger.info("Starting job %d (%s): %s", job_id, job.name, job.command)
        try:
            record = run_command(job.command, timeout=self._timeout, shell=self._shell, now=self.now)
            return self._ctx.record(record)
        finally:
            self._release(job_id)

    def running_jobs(self) -> frozenset[int]:
        with self._running_lock:
            return frozenset(self._running_ids)

    # -- Lifecycle ------------------------------------------------------------

    def start(self) -> None:
        """Start ticking at every minute boundary."""
        self._scheduler.start()
        logger.info("Trigger clock started")

    def stop(self, wait: bool = False) -> None:
        """Stop future ticks. Runs already dispatched are not interrupted.

        Args:
            wait: Block until in-flight runs have finished.
        """
        if self._scheduler.running:
            self._scheduler.shutdown(wait=True)
        self._pool.shutdown(wait=wait)
        logger.info("Trigger clock stopped")

    @property
    def running(self) -> bool:
        """Whether the clock is currently ticking."""
        return self._scheduler.running

    def next_tick(self) -> datetime | None:
        job = self._scheduler.get_job(_TICK_JOB_ID)
        return getattr(job, "next_run_time", None) if job else None

