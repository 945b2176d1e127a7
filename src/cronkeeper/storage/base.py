"""Storage protocols — the contracts the scheduler core needs from its stores."""

from __future__ import annotations

from typing import Protocol

from cronkeeper.core.models import CommandSummary, ExecutionRecord, JobDefinition


class JobStore(Protocol):
    """Durable job definitions (source of truth for the registry)."""

    def add_job(self, job: JobDefinition) -> JobDefinition:
        """Insert a new definition and return it with id and timestamps set.

        Raises DuplicateJobError if the name is taken.
        """
        ...

    def get_job(self, job_id: int) -> JobDefinition | None:
        """Return one definition, active or not."""
        ...

    def name_exists(self, name: str) -> bool:
        """Exact, case-sensitive name check across all definitions."""
        ...

    def list_jobs(self, active_only: bool = False) -> list[JobDefinition]:
        """Return definitions ordered by id."""
        ...

    def set_active(self, job_id: int, active: bool) -> JobDefinition:
        """Flip the active flag and bump updated_at."""
        ...


class HistoryStore(Protocol):
    """Append-only execution history."""

    def append(self, record: ExecutionRecord) -> int:
        """Insert one record and return its store-assigned sequence id."""
        ...

    def get(self, uid: str) -> ExecutionRecord | None:
        """Return the record carrying ``uid``."""
        ...

    def summarize(self) -> list[CommandSummary]:
        """Per-command aggregates ordered by last run, newest first."""
        ...


class Store(JobStore, HistoryStore, Protocol):
    """Both stores behind one connection, as owned by the recorder context."""

    def close(self) -> None:
        """Release connections."""
        ...
