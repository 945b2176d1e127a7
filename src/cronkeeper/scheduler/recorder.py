"""Status recorder — the single serialization point for durable writes.

``RecorderContext`` owns the relational store, the execution log and the lock
that every durable write in the process goes through: run records from
concurrently executing jobs as well as registry writes. It is opened once at
startup and closed at shutdown::

    with RecorderContext(store, log) as ctx:
        registry = JobRegistry(ctx)
        ...

The store is authoritative and written first; the log file is a best-effort
mirror. A failure in either sink is logged and does not undo the other.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import TYPE_CHECKING

from cronkeeper.errors import PersistenceError
from cronkeeper.storage import create_execution_log, create_sql_backend

if TYPE_CHECKING:
    from cronkeeper.config import Settings
    from cronkeeper.core.models import ExecutionRecord
    from cronkeeper.storage.base import Store
    from cronkeeper.storage.log_file import ExecutionLog

logger = logging.getLogger(__name__)


class RecorderContext:
    """Explicitly owned handles for the store, the log file and their lock."""

    def __init__(self, store: Store, log: ExecutionLog) -> None:
        self.store = store
        self.log = log
        self.lock = threading.RLock()
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings) -> RecorderContext:
        return cls(create_sql_backend(settings), create_execution_log(settings))

    # -- Lifecycle ------------------------------------------------------------

    def open(self) -> RecorderContext:
        with self.lock:
            self.log.open()
            self._closed = False
        return self

    def close(self) -> None:
        with self.lock:
            if self._closed:
                return
            self.log.close()
            self.store.close()
            self._closed = True
        logger.debug("Recorder context closed")

    def __enter__(self) -> RecorderContext:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- Writes ---------------------------------------------------------------

    def record(self, record: ExecutionRecord) -> ExecutionRecord:
        """Persist one run to both sinks.

        Returns the record with its ``sequence_id`` filled in, or unchanged
        if the store write failed.
        """
        with self.lock:
            try:
                sequence_id = self.store.append(record)
            except PersistenceError:
                logger.exception("Failed to store task %s (%s)", record.uid, record.command)
            else:
                record = dataclasses.replace(record, sequence_id=sequence_id)
                logger.debug("Stored task %s with sequence id %d", record.uid, sequence_id)

            try:
                self.log.write_record(record)
            except PersistenceError:
                logger.exception("Failed to write task %s to the log file", record.uid)

        logger.info(
            "Status: %s, Job UID: %s, Command: %s",
            record.status.value,
            record.uid,
            record.command,
        )
        return record

    def write_event(self, message: str) -> None:
        """Mirror a scheduler event to the log file and the application log."""
        logger.info(message)
        with self.lock:
            try:
                self.log.write_event(message)
            except PersistenceError:
                logger.exception("Failed to write event to the log file")
