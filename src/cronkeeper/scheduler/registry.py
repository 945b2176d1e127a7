"""Job registry — reconciles stored job definitions with the armed set.

The relational store is the source of truth. The registry keeps an in-memory
dispatch table ``{job_id: ArmedJob}`` for the trigger clock. The table is
replaced wholesale on every change (never mutated in place), so a clock reading
``snapshot()`` sees either the state before a change or after it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

from cronkeeper.core.cron import CronSchedule
from cronkeeper.core.models import JobDefinition
from cronkeeper.errors import (
    DuplicateJobError,
    InvalidScheduleError,
    JobNotFoundError,
    MissingFieldError,
)
from cronkeeper.storage.job_file import append_job_line, read_job_file

if TYPE_CHECKING:
    from cronkeeper.scheduler.recorder import RecorderContext
    from cronkeeper.storage.base import JobStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArmedJob:
    """What the clock needs to fire a job; looked up by job id each tick."""

    name: str
    schedule: CronSchedule
    command: str

    @classmethod
    def from_definition(cls, job: JobDefinition) -> ArmedJob:
        return cls(name=job.name, schedule=CronSchedule.parse(job.schedule), command=job.command)


class JobRegistry:
    """Registers, disables and arms job definitions."""

    def __init__(self, context: RecorderContext, jobs_file: str | Path | None = None) -> None:
        self._ctx = context
        self._store: JobStore = context.store
        self._jobs_file = Path(jobs_file) if jobs_file else None
        self._armed: Mapping[int, ArmedJob] = MappingProxyType({})

    # -- Dispatch table -------------------------------------------------------

    def snapshot(self) -> Mapping[int, ArmedJob]:
        """Read-only view of the armed jobs, keyed by job id."""
        return self._armed

    def _publish(self, table: dict[int, ArmedJob]) -> None:
        self._armed = MappingProxyType(table)

    def _arm(self, job: JobDefinition, armed: ArmedJob) -> None:
        table = dict(self._armed)
        table[job.id] = armed
        self._publish(table)

    def _unarm(self, job_id: int) -> None:
        if job_id in self._armed:
            table = dict(self._armed)
            del table[job_id]
            self._publish(table)

    # -- Operations -----------------------------------------------------------

    def register(
        self,
        name: str,
        schedule: str,
        command: str,
        description: str = "",
    ) -> JobDefinition:
        """Validate, persist and arm a new job.

        Raises:
            MissingFieldError: name, schedule or command is empty.
            InvalidScheduleError: the cron expression is malformed.
            DuplicateJobError: a job with this exact name already exists.
        """
        return self._register(name, schedule, command, description, mirror=True)

    def _register(
        self,
        name: str,
        schedule: str,
        command: str,
        description: str,
        *,
        mirror: bool,
    ) -> JobDefinition:
        name, schedule, command = (name or "").strip(), (schedule or "").strip(), (command or "").strip()
        for field, value in (("name", name), ("schedule", schedule), ("command", command)):
            if not value:
                raise MissingFieldError(field)
        cron = CronSchedule.parse(schedule)
        armed = ArmedJob(name=name, schedule=cron, command=command)

        with self._ctx.lock:
            if self._store.name_exists(name):
                raise DuplicateJobError(name)
            job = self._store.add_job(
                JobDefinition(
                    name=name,
                    schedule=cron.expression,
                    command=command,
                    description=(description or "").strip(),
                )
            )
            if mirror and self._jobs_file is not None:
                try:
                    append_job_line(self._jobs_file, cron.expression, command)
                except OSError:
                    logger.exception("Error writing to jobs file %s", self._jobs_file)
            self._arm(job, armed)

        self._ctx.write_event(f"Scheduled job: {command} with cron expression: {cron}")
        return job

    def disable(self, job_id: int) -> JobDefinition:
        """Deactivate a job and remove it from future ticks. Idempotent.

        Runs already dispatched are left alone.
        """
        with self._ctx.lock:
            job = self._store.get_job(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.active:
                job = self._store.set_active(job_id, False)
                logger.info("Disabled job %d (%s)", job_id, job.name)
            self._unarm(job_id)
        return job

    def reconcile(self) -> int:
        """Rebuild the armed set from the store; return the number armed.

        Picks up jobs added or disabled by another process. Stored rows whose
        schedule no longer parses are skipped with a warning.
        """
        with self._ctx.lock:
            table: dict[int, ArmedJob] = {}
            for job in self._store.list_jobs(active_only=True):
                try:
                    table[job.id] = ArmedJob.from_definition(job)
                except InvalidScheduleError as exc:
                    logger.warning("Not arming job %d (%s): %s", job.id, job.name, exc)
            if table.keys() != self._armed.keys():
                logger.info("Reconciled registry: %d job(s) armed", len(table))
            self._publish(table)
        return len(table)

    def import_file(self, path: str | Path | None = None) -> int:
        """Register every new entry of a line-oriented job file.

        Malformed lines are skipped with a warning. Entries whose schedule and
        command already belong to a stored job (active or not) are skipped, so
        re-importing the same file is harmless.

        Returns:
            Number of newly registered jobs.
        """
        path = Path(path) if path else self._jobs_file
        if path is None:
            return 0

        known = {(job.schedule, job.command) for job in self._store.list_jobs()}
        added = 0
        for entry in read_job_file(path):
            try:
                schedule = CronSchedule.parse(entry.schedule).expression
            except InvalidScheduleError as exc:
                logger.warning("Skipping invalid line %s:%d: %s", path, entry.line_number, exc)
                continue
            if (schedule, entry.command) in known:
                logger.debug("Line %s:%d already registered", path, entry.line_number)
                continue
            try:
                self._register(
                    entry.derived_name,
                    schedule,
                    entry.command,
                    f"Imported from {path.name}:{entry.line_number}",
                    mirror=False,
                )
            except DuplicateJobError as exc:
                logger.warning("Skipping line %s:%d: %s", path, entry.line_number, exc)
                continue
            known.add((schedule, entry.command))
            added += 1

        logger.info("Imported %d job(s) from %s", added, path)
        return added

    # -- Audit ----------------------------------------------------------------

    def jobs(self, active_only: bool = False) -> list[JobDefinition]:
        return self._store.list_jobs(active_only=active_only)

    def get(self, job_id: int) -> JobDefinition:
        job = self._store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    @property
    def armed_count(self) -> int:
        return len(self._armed)
