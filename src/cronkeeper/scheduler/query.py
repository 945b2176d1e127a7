"""Status queries over the execution history — independent of the clock."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cronkeeper.errors import RecordNotFoundError

if TYPE_CHECKING:
    from cronkeeper.core.models import CommandSummary, ExecutionRecord
    from cronkeeper.storage.base import HistoryStore

logger = logging.getLogger(__name__)


def render_log(record: ExecutionRecord, timestamp_format: str = "%d-%m-%Y %H:%M:%S") -> str:
    """Plain-text report of one run, as served for download."""
    return (
        f"Task ID: {record.uid}\n"
        f"Command: {record.command}\n"
        f"Timestamp: {record.timestamp.strftime(timestamp_format)}\n"
        f"Status: {record.status.value}\n"
        f"\n"
        f"Output:\n"
        f"{record.output}\n"
    )


class StatusQueryService:
    """Aggregated and per-run views of the recorded history."""

    def __init__(self, history: HistoryStore) -> None:
        self._history = history

    def summarize(self) -> list[CommandSummary]:
        """One entry per distinct command, most recently run first."""
        return self._history.summarize()

    def fetch(self, uid: str) -> ExecutionRecord:
        """Return the run carrying ``uid``.

        Raises:
            RecordNotFoundError: No record has this uid.
        """
        record = self._history.get(uid)
        if record is None:
            logger.debug("Lookup for unknown task %s", uid)
            raise RecordNotFoundError(uid)
        return record
