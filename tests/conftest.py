"""Shared fixtures — every test gets its own SQLite file and log under tmp_path."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from cronkeeper.config import get_settings
from cronkeeper.scheduler.clock import TriggerClock
from cronkeeper.scheduler.recorder import RecorderContext
from cronkeeper.scheduler.registry import JobRegistry
from cronkeeper.storage.log_file import ExecutionLog
from cronkeeper.storage.sql_backend import SqlBackend


@pytest.fixture()
def store(tmp_path: Path) -> Iterator[SqlBackend]:
    backend = SqlBackend(f"sqlite:///{tmp_path / 'database' / 'jobs.db'}")
    yield backend
    backend.close()


@pytest.fixture()
def log_path(tmp_path: Path) -> Path:
    return tmp_path / "logs" / "scheduler.log"


@pytest.fixture()
def context(store: SqlBackend, log_path: Path) -> Iterator[RecorderContext]:
    with RecorderContext(store, ExecutionLog(log_path)) as ctx:
        yield ctx


@pytest.fixture()
def jobs_file(tmp_path: Path) -> Path:
    return tmp_path / "cron_jobs.txt"


@pytest.fixture()
def registry(context: RecorderContext, jobs_file: Path) -> JobRegistry:
    return JobRegistry(context, jobs_file=jobs_file)


@pytest.fixture()
def clock(registry: JobRegistry, context: RecorderContext) -> Iterator[TriggerClock]:
    trigger_clock = TriggerClock(registry, context, max_workers=4)
    yield trigger_clock
    trigger_clock.stop(wait=True)


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
