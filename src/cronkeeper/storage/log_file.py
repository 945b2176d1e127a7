"""Append-only, human-readable execution log (``scheduler.log``).

One line per run, plus an extended block carrying the output for failures::

    [17-10-2026 09:30:00] Status: Success, Job UID: 6f1c..., Command: echo ok
    [17-10-2026 09:31:00] Status: Failure, Job UID: 0b2e..., Command: exit 1
    [17-10-2026 09:31:00] Error occurred Status: Failure, Job UID: 0b2e...
    Command: exit 1, Output: ...
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TextIO

from cronkeeper.core.models import ExecutionRecord, ExecutionStatus
from cronkeeper.errors import PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_TIMESTAMP_FORMAT = "%d-%m-%Y %H:%M:%S"


def format_record(record: ExecutionRecord, fmt: str = DEFAULT_TIMESTAMP_FORMAT) -> str:
    """Render the log text for one run (always newline-terminated)."""
    ts = record.timestamp.strftime(fmt)
    text = (
        f"[{ts}] Status: {record.status.value}, Job UID: {record.uid}, "
        f"Command: {record.command}\n"
    )
    if record.status is ExecutionStatus.FAILURE:
        text += (
            f"[{ts}] Error occurred Status: {record.status.value}, Job UID: {record.uid}\n"
            f"Command: {record.command}, Output: {record.output}"
        )
        if not text.endswith("\n"):
            text += "\n"
    return text


class ExecutionLog:
    """Owns the log file handle. Not thread-safe on its own; callers lock."""

    def __init__(self, path: str | Path, timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT) -> None:
        self.path = Path(path)
        self.timestamp_format = timestamp_format
        self._handle: TextIO | None = None

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def open(self) -> None:
        if self._handle is not None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("a", encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Error opening log file {self.path}: {exc}") from exc
        logger.info("Opened log file: %s", self.path)

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def _write(self, text: str) -> None:
        if self._handle is None:
            raise PersistenceError(f"Log file {self.path} is not open")
        try:
            self._handle.write(text)
            self._handle.flush()
        except OSError as exc:
            raise PersistenceError(f"Error writing to log file: {exc}") from exc

    def write_record(self, record: ExecutionRecord) -> None:
        self._write(format_record(record, self.timestamp_format))

    def write_event(self, message: str, when: datetime | None = None) -> None:
        """Write a scheduler event line such as ``Scheduler has started``."""
        ts = (when or datetime.now()).strftime(self.timestamp_format)
        self._write(f"[{ts}] {message}\n")
