"""CLI entry point — ``python -m cronkeeper serve|run|status|show|add|disable|jobs``."""

from __future__ import annotations

import argparse
import logging
import sys

from cronkeeper.config import Settings, get_settings
from cronkeeper.core.executor import run_command
from cronkeeper.errors import ConfigurationError, NotFoundError, PersistenceError
from cronkeeper.scheduler.query import StatusQueryService, render_log
from cronkeeper.scheduler.recorder import RecorderContext
from cronkeeper.scheduler.runner import build_registry

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cronkeeper",
        description="cronkeeper — run shell commands on cron schedules and keep their history.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Start the long-lived scheduler (clock + status server).")
    sub.add_parser("status", help="Show last run and success/failure counts per command.")
    sub.add_parser("jobs", help="List every job definition, including disabled ones.")

    p = sub.add_parser("run", help="Run a command once now and record the result.")
    p.add_argument("shell_command", help="Shell command line to execute.")

    p = sub.add_parser("show", help="Print the full report of one run.")
    p.add_argument("uid", help="Task UID of the run.")

    p = sub.add_parser("add", help="Register a new job.")
    p.add_argument("--name", required=True, help="Unique job name.")
    p.add_argument("--schedule", required=True, help='5-field cron expression, e.g. "30 2 * * *".')
    p.add_argument("--command", dest="job_command", required=True, help="Shell command to run.")
    p.add_argument("--description", default="", help="Free-form description.")

    p = sub.add_parser("disable", help="Disable a job so it no longer fires.")
    p.add_argument("job_id", type=int, help="Numeric job id (see 'jobs').")

    return parser


def _print_status(query: StatusQueryService, settings: Settings) -> None:
    summaries = query.summarize()
    if not summaries:
        print("No runs recorded yet")
        return
    for s in summaries:
        print(f"{s.last_task_id}  {s.last_run.strftime(settings.timestamp_format)}  "
              f"ok={s.success_count} failed={s.failure_count}  {s.command}")


def _dispatch(args: argparse.Namespace, settings: Settings) -> int:
    if args.command == "serve":
        from cronkeeper.scheduler.runner import serve

        serve(settings)
        return 0

    with RecorderContext.from_settings(settings) as context:
        if args.command == "run":
            record = context.record(
                run_command(args.shell_command, timeout=settings.job_timeout, shell=settings.shell)
            )
            print(render_log(record, settings.timestamp_format), end="")
            return 0 if record.succeeded else 1

        if args.command == "status":
            _print_status(StatusQueryService(context.store), settings)
            return 0

        if args.command == "show":
            record = StatusQueryService(context.store).fetch(args.uid)
            print(render_log(record, settings.timestamp_format), end="")
            return 0

        registry = build_registry(context, settings)

        if args.command == "add":
            job = registry.register(args.name, args.schedule, args.job_command, args.description)
            print(f"Added job {job.id}: {job.name} ({job.schedule}) {job.command}")
            return 0

        if args.command == "disable":
            job = registry.disable(args.job_id)
            print(f"Disabled job {job.id}: {job.name}")
            return 0

        if args.command == "jobs":
            for job in registry.jobs():
                state = "active" if job.active else "disabled"
                print(f"{job.id:>4}  {state:<8}  {job.name:<24}  {job.schedule:<15}  {job.command}")
            return 0

    return 1  # unreachable with required=True


def main(argv: list[str] | None = None) -> int:
    """Parse CLI args and dispatch to the matching command."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()

    # Configure logging
    level = "DEBUG" if args.verbose else settings.log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        return _dispatch(args, settings)
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except NotFoundError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 3
    except PersistenceError as exc:
        logger.error("%s", exc)
        return 4


if __name__ == "__main__":
    sys.exit(main())
