"""Scheduler package — registry, trigger clock, recorder, queries and serve mode."""

from cronkeeper.scheduler.clock import TriggerClock
from cronkeeper.scheduler.query import StatusQueryService
from cronkeeper.scheduler.recorder import RecorderContext
from cronkeeper.scheduler.registry import JobRegistry
from cronkeeper.scheduler.runner import serve
from cronkeeper.scheduler.status_server import start_status_server

__all__ = [
    "JobRegistry",
    "RecorderContext",
    "StatusQueryService",
    "TriggerClock",
    "serve",
    "start_status_server",
]
