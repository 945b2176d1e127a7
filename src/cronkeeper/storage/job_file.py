"""Line-oriented job file — ``<minute> <hour> <day> <month> <dow> <command>``.

Blank lines and ``#`` comments are ignored. Each remaining line must hold at
least six whitespace-separated fields; the first five are the schedule and the
rest, joined by single spaces, is the command.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEDULE_FIELDS = 5


@dataclass(frozen=True)
class JobLine:
    """One parsed entry of a job file."""

    line_number: int
    schedule: str
    command: str

    @property
    def derived_name(self) -> str:
        """Stable job name for an entry that carries no name of its own."""
        digest = hashlib.sha1(f"{self.schedule}\n{self.command}".encode()).hexdigest()
        return f"file-{digest[:12]}"


def parse_job_line(line: str, line_number: int = 0) -> JobLine | None:
    """Parse one line; return None for blanks and comments.

    Raises:
        ValueError: If the line has fewer than six fields.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    parts = stripped.split()
    if len(parts) <= _SCHEDULE_FIELDS:
        msg = f"expected '<5-field cron> <command>', got {len(parts)} field(s)"
        raise ValueError(msg)
    return JobLine(
        line_number=line_number,
        schedule=" ".join(parts[:_SCHEDULE_FIELDS]),
        command=" ".join(parts[_SCHEDULE_FIELDS:]),
    )


def read_job_file(path: str | Path) -> list[JobLine]:
    """Read every well-formed entry, skipping malformed lines with a warning.

    A missing file yields an empty list.
    """
    path = Path(path)
    if not path.exists():
        logger.info("Job file %s not found, nothing to import", path)
        return []

    entries: list[JobLine] = []
    with path.open("rb") as f:
        for number, raw in enumerate(f, start=1):
            try:
                entry = parse_job_line(raw.decode("utf-8"), number)
            except ValueError as exc:  # includes UnicodeDecodeError
                logger.warning("Skipping invalid line %s:%d: %s", path, number, exc)
                continue
            if entry is not None:
                entries.append(entry)
    return entries


def append_job_line(path: str | Path, schedule: str, command: str) -> None:
    """Append one entry, creating the file if needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(f"{schedule} {command}\n")
    logger.debug("Appended job line to %s: %s %s", path, schedule, command)
