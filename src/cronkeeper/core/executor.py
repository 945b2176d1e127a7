"""Run one shell command to completion and turn the outcome into a record.

A failing command is a normal, recorded outcome: ``run_command`` never raises
because the command failed, could not be spawned, or ran past its deadline.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import uuid
from datetime import datetime
from typing import Callable

from cronkeeper.core.models import ExecutionRecord, ExecutionStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _kill_group(proc: subprocess.Popen[bytes]) -> None:
    """SIGKILL the command's whole process group."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _spawn_and_wait(
    command: str,
    shell: str,
    timeout: float | None,
) -> tuple[int | None, bytes]:
    """Return ``(exit_code, combined_output)``; exit code is None on timeout."""
    with subprocess.Popen(
        [shell, "-c", command],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        start_new_session=True,
    ) as proc:
        try:
            output, _ = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_group(proc)
            output, _ = proc.communicate()
            return None, output
        return proc.returncode, output


def run_command(
    command: str,
    *,
    timeout: float | None = None,
    shell: str = "bash",
    now: Clock = datetime.now,
) -> ExecutionRecord:
    """Execute ``command`` via ``<shell> -c`` and wait for it.

    Args:
        command: Shell command line.
        timeout: Seconds before the process group is killed (None = wait forever).
        shell: Shell binary used to interpret the command.
        now: Clock used for the completion timestamp.

    Returns:
        ExecutionRecord with a fresh uid, ``Success`` iff the exit status is 0.
    """
    uid = str(uuid.uuid4())
    logger.debug("Running task %s: %s", uid, command)

    try:
        exit_code, raw = _spawn_and_wait(command, shell, timeout)
    except OSError as exc:
        logger.warning("Could not start '%s': %s", command, exc)
        exit_code, raw = -1, f"failed to start command: {exc}\n".encode()

    output = raw.decode("utf-8", errors="replace")
    if exit_code is None:
        output += f"\n[cronkeeper] command timed out after {timeout:g}s and was killed\n"
        logger.warning("Task %s timed out after %ss: %s", uid, timeout, command)

    status = ExecutionStatus.SUCCESS if exit_code == 0 else ExecutionStatus.FAILURE
    logger.debug("Task %s finished: %s (exit %s)", uid, status.value, exit_code)
    return ExecutionRecord(
        uid=uid,
        command=command,
        timestamp=now(),
        status=status,
        output=output,
    )
