"""Serve-mode orchestrator — clock, registry and status server in one process."""

from __future__ import annotations

import logging
import signal
import threading
import time
from typing import TYPE_CHECKING

from cronkeeper.scheduler.clock import TriggerClock
from cronkeeper.scheduler.query import StatusQueryService
from cronkeeper.scheduler.recorder import RecorderContext
from cronkeeper.scheduler.registry import JobRegistry
from cronkeeper.scheduler.status_server import start_status_server

if TYPE_CHECKING:
    from cronkeeper.config.settings import Settings

logger = logging.getLogger(__name__)


def build_registry(context: RecorderContext, settings: Settings) -> JobRegistry:
    """Registry wired to the configured jobs file (when mirroring is on)."""
    jobs_file = settings.jobs_file if settings.mirror_jobs_file else None
    return JobRegistry(context, jobs_file=jobs_file)


def build_clock(registry: JobRegistry, context: RecorderContext, settings: Settings) -> TriggerClock:
    return TriggerClock(
        registry,
        context,
        max_workers=settings.max_workers,
        overlap_policy=settings.overlap_policy,
        timeout=settings.job_timeout,
        shell=settings.shell,
        timezone=settings.timezone,
        reconcile_on_tick=settings.reconcile_on_tick,
        misfire_grace_time=settings.misfire_grace_time,
    )


def serve(settings: Settings) -> None:
    """Load jobs, start the clock and status server, and block until a signal.

    This is the entry point for ``cronkeeper serve``. In-flight runs are not
    waited for on shutdown.
    """
    with RecorderContext.from_settings(settings) as context:
        registry = build_registry(context, settings)
        registry.import_file(settings.jobs_file)
        registry.reconcile()

        clock = build_clock(registry, context, settings)

        server = None
        if settings.status_server_enabled:
            host, port = settings.listen_address
            server, _ = start_status_server(
                StatusQueryService(context.store),
                host=host,
                port=port,
                timestamp_format=settings.timestamp_format,
            )

        clock.start()
        context.write_event("Scheduler has started")
        logger.info("Serve mode active — %d job(s) armed", registry.armed_count)

        # Block until signal
        stop_event = threading.Event()

        def _handle_signal(signum: int, frame: object) -> None:
            logger.info("Received signal %d, shutting down...", signum)
            stop_event.set()

        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)

        try:
            while not stop_event.is_set():
                time.sleep(1)
        finally:
            clock.stop(wait=False)
            if server:
                server.shutdown()
            context.write_event("Scheduler has stopped")
            logger.info("Serve mode stopped")
