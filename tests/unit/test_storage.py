"""Tests for the storage layer — SqlBackend, job file and execution log."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from cronkeeper.config import Settings
from cronkeeper.core.models import ExecutionRecord, ExecutionStatus, JobDefinition
from cronkeeper.errors import DuplicateJobError, JobNotFoundError, PersistenceError
from cronkeeper.storage import create_execution_log, create_sql_backend
from cronkeeper.storage.job_file import (
    JobLine,
    append_job_line,
    parse_job_line,
    read_job_file,
)
from cronkeeper.storage.log_file import ExecutionLog, format_record
from cronkeeper.storage.sql_backend import SqlBackend

T0 = datetime(2026, 10, 17, 2, 30, 0)


def _record(
    uid: str,
    command: str = "echo ok",
    status: ExecutionStatus = ExecutionStatus.SUCCESS,
    output: str = "ok\n",
    at: datetime = T0,
) -> ExecutionRecord:
    return ExecutionRecord(uid=uid, command=command, timestamp=at, status=status, output=output)


# ---------------------------------------------------------------------------
# SqlBackend — jobs
# ---------------------------------------------------------------------------


class TestSqlJobs:
    def test_add_job_assigns_id_and_timestamps(self, store: SqlBackend) -> None:
        job = store.add_job(JobDefinition(name="ping", schedule="* * * * *", command="echo ok"))
        assert job.id is not None
        assert job.active is True
        assert job.created_at is not None
        assert job.created_at == job.updated_at

    def test_ids_are_sequential(self, store: SqlBackend) -> None:
        a = store.add_job(JobDefinition(name="a", schedule="* * * * *", command="true"))
        b = store.add_job(JobDefinition(name="b", schedule="* * * * *", command="true"))
        assert b.id > a.id

    def test_duplicate_name_raises(self, store: SqlBackend) -> None:
        store.add_job(JobDefinition(name="ping", schedule="* * * * *", command="echo ok"))
        with pytest.raises(DuplicateJobError, match="ping"):
            store.add_job(JobDefinition(name="ping", schedule="0 * * * *", command="echo other"))
        assert len(store.list_jobs()) == 1

    def test_name_exists_is_case_sensitive(self, store: SqlBackend) -> None:
        store.add_job(JobDefinition(name="Ping", schedule="* * * * *", command="true"))
        assert store.name_exists("Ping")
        assert not store.name_exists("ping")

    def test_get_job(self, store: SqlBackend) -> None:
        job = store.add_job(
            JobDefinition(name="n", schedule="5 4 * * *", command="true", description="nightly")
        )
        fetched = store.get_job(job.id)
        assert fetched == job
        assert fetched.description == "nightly"
        assert store.get_job(9999) is None

    def test_set_active_and_list_active_only(self, store: SqlBackend) -> None:
        a = store.add_job(JobDefinition(name="a", schedule="* * * * *", command="true"))
        b = store.add_job(JobDefinition(name="b", schedule="* * * * *", command="true"))

        disabled = store.set_active(a.id, False)

        assert disabled.active is False
        assert disabled.updated_at >= a.updated_at
        assert [j.name for j in store.list_jobs(active_only=True)] == ["b"]
        assert [j.name for j in store.list_jobs()] == ["a", "b"]
        assert b.active

    def test_set_active_unknown_raises(self, store: SqlBackend) -> None:
        with pytest.raises(JobNotFoundError):
            store.set_active(42, False)


# ---------------------------------------------------------------------------
# SqlBackend — history
# ---------------------------------------------------------------------------


class TestSqlHistory:
    def test_append_assigns_monotonic_sequence_ids(self, store: SqlBackend) -> None:
        ids = [store.append(_record(f"uid-{i}")) for i in range(3)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 3

    def test_get_round_trip(self, store: SqlBackend) -> None:
        original = _record("uid-1", command="exit 1", status=ExecutionStatus.FAILURE, output="bad\n")
        seq = store.append(original)

        fetched = store.get("uid-1")

        assert fetched is not None
        assert fetched.sequence_id == seq
        assert fetched.command == original.command
        assert fetched.status is ExecutionStatus.FAILURE
        assert fetched.output == "bad\n"
        assert fetched.timestamp == T0

    def test_get_unknown_returns_none(self, store: SqlBackend) -> None:
        assert store.get("missing") is None

    def test_duplicate_uid_raises(self, store: SqlBackend) -> None:
        store.append(_record("same"))
        with pytest.raises(PersistenceError):
            store.append(_record("same"))

    def test_large_output_survives(self, store: SqlBackend) -> None:
        big = "x" * 200_000
        store.append(_record("big", output=big))
        assert store.get("big").output == big

    def test_summarize_groups_by_command(self, store: SqlBackend) -> None:
        store.append(_record("a1", command="echo a", at=T0))
        store.append(_record("b1", command="echo b", status=ExecutionStatus.FAILURE, output="e1", at=T0 + timedelta(minutes=1)))
        store.append(_record("a2", command="echo a", status=ExecutionStatus.FAILURE, output="a-out", at=T0 + timedelta(minutes=2)))
        store.append(_record("a3", command="echo a", output="a-last", at=T0 + timedelta(minutes=3)))

        summary = store.summarize()

        assert [s.command for s in summary] == ["echo a", "echo b"]
        a, b = summary
        assert (a.success_count, a.failure_count) == (2, 1)
        assert a.last_task_id == "a3"
        assert a.last_run == T0 + timedelta(minutes=3)
        assert a.last_output == "a-last"
        assert a.total_runs == 3
        assert (b.success_count, b.failure_count) == (0, 1)
        assert b.last_task_id == "b1"

    def test_summarize_orders_newest_first(self, store: SqlBackend) -> None:
        store.append(_record("x", command="old", at=T0))
        store.append(_record("y", command="new", at=T0 + timedelta(days=1)))
        assert [s.command for s in store.summarize()] == ["new", "old"]

    def test_summarize_empty(self, store: SqlBackend) -> None:
        assert store.summarize() == []


class TestSqlBackendSetup:
    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        db = tmp_path / "nested" / "dir" / "jobs.db"
        backend = SqlBackend(f"sqlite:///{db}")
        try:
            assert db.parent.is_dir()
        finally:
            backend.close()

    def test_in_memory_database(self) -> None:
        backend = SqlBackend("sqlite://")
        try:
            backend.append(_record("mem"))
            assert backend.get("mem") is not None
        finally:
            backend.close()

    def test_data_persists_across_instances(self, tmp_path: Path) -> None:
        url = f"sqlite:///{tmp_path / 'jobs.db'}"
        first = SqlBackend(url)
        first.append(_record("kept"))
        first.close()

        second = SqlBackend(url)
        try:
            assert second.get("kept") is not None
        finally:
            second.close()

    def test_factory_uses_settings(self, tmp_path: Path) -> None:
        settings = Settings(_env_file=None, db_dir=str(tmp_path / "db"), log_dir=str(tmp_path / "logs"))
        backend = create_sql_backend(settings)
        try:
            assert (tmp_path / "db").is_dir()
        finally:
            backend.close()
        log = create_execution_log(settings)
        assert log.path == tmp_path / "logs" / "scheduler.log"
        assert not log.is_open


# ---------------------------------------------------------------------------
# Job file
# ---------------------------------------------------------------------------


class TestJobFile:
    def test_parse_line(self) -> None:
        entry = parse_job_line("*/5 * * * * df -h  /", 3)
        assert entry == JobLine(line_number=3, schedule="*/5 * * * *", command="df -h /")

    @pytest.mark.parametrize("line", ["", "   ", "# comment", "  # indented comment"])
    def test_blank_and_comment_lines_are_ignored(self, line: str) -> None:
        assert parse_job_line(line) is None

    def test_short_line_raises(self) -> None:
        with pytest.raises(ValueError, match="got 5 field"):
            parse_job_line("* * * * *")

    def test_read_skips_malformed_lines(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "cron_jobs.txt"
        path.write_text("# jobs\n* * * * * echo one\nbroken line\n\n0 2 * * * echo two\n")

        with caplog.at_level(logging.WARNING):
            entries = read_job_file(path)

        assert [(e.line_number, e.command) for e in entries] == [(2, "echo one"), (5, "echo two")]
        assert "Skipping invalid line" in caplog.text
        assert ":3:" in caplog.text

    def test_read_skips_undecodable_line(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "cron_jobs.txt"
        path.write_bytes(
            b"* * * * * echo good\n* * * * * echo \xff\xfe bad\n0 1 * * * echo caf\xc3\xa9\n"
        )

        with caplog.at_level(logging.WARNING):
            entries = read_job_file(path)

        assert [(e.line_number, e.command) for e in entries] == [
            (1, "echo good"),
            (3, "echo café"),
        ]
        assert "Skipping invalid line" in caplog.text
        assert ":2:" in caplog.text

    def test_read_handles_crlf(self, tmp_path: Path) -> None:
        path = tmp_path / "cron_jobs.txt"
        path.write_bytes(b"* * * * * echo one\r\n")
        assert read_job_file(path)[0].command == "echo one"

    def test_read_missing_file(self, tmp_path: Path) -> None:
        assert read_job_file(tmp_path / "nope.txt") == []

    def test_append_creates_file(self, tmp_path: Path) -> None:
        path = tmp_path / "sub" / "cron_jobs.txt"
        append_job_line(path, "0 1 * * *", "echo a")
        append_job_line(path, "0 2 * * *", "echo b")
        assert path.read_text() == "0 1 * * * echo a\n0 2 * * * echo b\n"

    def test_derived_name_is_stable(self) -> None:
        a = JobLine(1, "* * * * *", "echo hi")
        b = JobLine(7, "* * * * *", "echo hi")
        c = JobLine(1, "* * * * *", "echo bye")
        assert a.derived_name == b.derived_name
        assert a.derived_name != c.derived_name
        assert a.derived_name.startswith("file-")


# ---------------------------------------------------------------------------
# Execution log
# ---------------------------------------------------------------------------


class TestExecutionLog:
    def test_format_success_is_one_line(self) -> None:
        text = format_record(_record("u1"))
        assert text == "[17-10-2026 02:30:00] Status: Success, Job UID: u1, Command: echo ok\n"

    def test_format_failure_adds_output_block(self) -> None:
        text = format_record(
            _record("u2", command="exit 1", status=ExecutionStatus.FAILURE, output="oops")
        )
        lines = text.splitlines()
        assert lines[0] == "[17-10-2026 02:30:00] Status: Failure, Job UID: u2, Command: exit 1"
        assert lines[1] == "[17-10-2026 02:30:00] Error occurred Status: Failure, Job UID: u2"
        assert lines[2] == "Command: exit 1, Output: oops"
        assert text.endswith("\n")

    def test_custom_timestamp_format(self) -> None:
        assert format_record(_record("u3"), "%Y-%m-%dT%H:%M").startswith("[2026-10-17T02:30]")

    def test_write_appends(self, tmp_path: Path) -> None:
        path = tmp_path / "logs" / "scheduler.log"
        log = ExecutionLog(path)
        log.open()
        log.write_record(_record("u1"))
        log.write_event("Scheduler has started", when=T0)
        log.close()

        log.open()
        log.write_record(_record("u2"))
        log.close()

        lines = path.read_text().splitlines()
        assert len(lines) == 3
        assert lines[1] == "[17-10-2026 02:30:00] Scheduler has started"
        assert "u2" in lines[2]

    def test_write_when_closed_raises(self, tmp_path: Path) -> None:
        log = ExecutionLog(tmp_path / "scheduler.log")
        with pytest.raises(PersistenceError, match="not open"):
            log.write_record(_record("u1"))

    def test_open_failure_raises_persistence_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        log = ExecutionLog(blocker / "scheduler.log")
        with pytest.raises(PersistenceError, match="Error opening log file"):
            log.open()
