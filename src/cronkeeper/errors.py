"""Exception hierarchy.

Configuration errors are raised synchronously when a job is registered and the
job is never armed. Lookup failures are NotFound conditions rather than faults.
A command that exits non-zero is not an exception at all; it is recorded as a
``Failure`` run.
"""

from __future__ import annotations


class CronkeeperError(Exception):
    """Base class for all cronkeeper errors."""


# -- Configuration -----------------------------------------------------------


class ConfigurationError(CronkeeperError):
    """A job definition was rejected at registration time."""


class MissingFieldError(ConfigurationError):
    """A required job field was empty."""

    def __init__(self, field: str) -> None:
        super().__init__(f"Missing required field: '{field}'")
        self.field = field


class InvalidScheduleError(ConfigurationError, ValueError):
    """A cron expression could not be parsed."""


class DuplicateJobError(ConfigurationError):
    """A job with the same name already exists."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Job name '{name}' already exists. Please choose a different unique name."
        )
        self.name = name


# -- Lookups -----------------------------------------------------------------


class NotFoundError(CronkeeperError, LookupError):
    """Base class for lookups that matched nothing."""


class JobNotFoundError(NotFoundError):
    def __init__(self, job_id: int) -> None:
        super().__init__(f"No job with id {job_id}")
        self.job_id = job_id


class RecordNotFoundError(NotFoundError):
    def __init__(self, uid: str) -> None:
        super().__init__(f"No log entries found for task ID '{uid}'")
        self.uid = uid


# -- Persistence -------------------------------------------------------------


class PersistenceError(CronkeeperError):
    """A durable store could not be read or written."""
