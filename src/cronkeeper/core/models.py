"""Plain data types shared by the scheduler, the stores and the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ExecutionStatus(str, Enum):
    """Terminal outcome of one run. There is no in-progress state."""

    SUCCESS = "Success"
    FAILURE = "Failure"


@dataclass(frozen=True)
class JobDefinition:
    """A named, schedulable command.

    Only ``active`` ever changes after creation; disabled jobs are kept for
    audit and simply excluded from scheduling.
    """

    name: str
    schedule: str
    command: str
    description: str = ""
    active: bool = True
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ExecutionRecord:
    """Outcome of exactly one job firing.

    ``uid`` is the external handle used for log retrieval. ``sequence_id`` is
    assigned by the relational store and stays ``None`` until recorded.
    """

    uid: str
    command: str
    timestamp: datetime
    status: ExecutionStatus
    output: str = field(default="", repr=False)
    sequence_id: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS


@dataclass(frozen=True)
class CommandSummary:
    """Aggregated history of every run of one command string."""

    command: str
    last_task_id: str
    last_run: datetime
    success_count: int
    failure_count: int
    last_output: str = field(default="", repr=False)

    @property
    def total_runs(self) -> int:
        return self.success_count + self.failure_count
