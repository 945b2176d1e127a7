"""Storage package — relational store, job file source and execution log."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cronkeeper.storage.base import HistoryStore, JobStore, Store
from cronkeeper.storage.log_file import ExecutionLog
from cronkeeper.storage.sql_backend import SqlBackend

if TYPE_CHECKING:
    from cronkeeper.config import Settings

__all__ = [
    "ExecutionLog",
    "HistoryStore",
    "JobStore",
    "SqlBackend",
    "Store",
    "create_execution_log",
    "create_sql_backend",
]


def create_sql_backend(settings: Settings) -> SqlBackend:
    """Open the relational store configured in ``settings``."""
    return SqlBackend(settings.resolved_database_url)


def create_execution_log(settings: Settings) -> ExecutionLog:
    """Build (but do not open) the execution log configured in ``settings``."""
    return ExecutionLog(settings.log_file_path, settings.timestamp_format)
