"""SQLAlchemy storage backend — job definitions and execution history.

Both tables live in one database (SQLite by default). Writes are serialized by
the caller (see ``RecorderContext.lock``); reads may run from any thread.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from sqlalchemy import (
    Boolean,
    DateTime,
    Integer,
    String,
    Text,
    case,
    create_engine,
    func,
    select,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from cronkeeper.core.models import (
    CommandSummary,
    ExecutionRecord,
    ExecutionStatus,
    JobDefinition,
)
from cronkeeper.errors import DuplicateJobError, JobNotFoundError, PersistenceError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class JobRow(Base):
    """One job definition. Rows are never deleted, only deactivated."""

    __tablename__ = "jobs"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True)
    schedule: Mapped[str] = mapped_column(String(255))
    command: Mapped[str] = mapped_column(Text)
    description: Mapped[str] = mapped_column(Text, default="")
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)

    def to_definition(self) -> JobDefinition:
        return JobDefinition(
            id=self.id,
            name=self.name,
            schedule=self.schedule,
            command=self.command,
            description=self.description or "",
            active=bool(self.active),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class TaskRow(Base):
    """One finished run. ``id`` is the monotonic sequence id."""

    __tablename__ = "tasks"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_uid: Mapped[str] = mapped_column(String(36), unique=True)
    command: Mapped[str] = mapped_column(Text, index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime)
    status: Mapped[str] = mapped_column(String(16))
    output: Mapped[str] = mapped_column(Text, default="")

    def to_record(self) -> ExecutionRecord:
        return ExecutionRecord(
            uid=self.task_uid,
            sequence_id=self.id,
            command=self.command,
            timestamp=self.timestamp,
            status=ExecutionStatus(self.status),
            output=self.output or "",
        )


def _make_engine(url: str) -> Engine:
    """Create an engine, preparing SQLite files and thread sharing."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return create_engine(url, pool_pre_ping=True)

    connect_args = {"check_same_thread": False}
    database = parsed.database or ""
    if database in ("", ":memory:"):
        # One shared connection so every thread sees the same in-memory db
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool)

    Path(database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, connect_args=connect_args)


class SqlBackend:
    """Relational store implementing both ``JobStore`` and ``HistoryStore``."""

    def __init__(self, url: str = "sqlite://") -> None:
        self.url = url
        try:
            self._engine = _make_engine(url)
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error opening database {url}: {exc}") from exc
        self._session = sessionmaker(self._engine, expire_on_commit=False)
        logger.info("Opened database: %s", self._engine.url)

    def close(self) -> None:
        self._engine.dispose()

    # -- Jobs -----------------------------------------------------------------

    def add_job(self, job: JobDefinition) -> JobDefinition:
        now = datetime.now()
        row = JobRow(
            name=job.name,
            schedule=job.schedule,
            command=job.command,
            description=job.description,
            active=job.active,
            created_at=job.created_at or now,
            updated_at=job.updated_at or now,
        )
        try:
            with self._session.begin() as session:
                session.add(row)
                session.flush()
                return row.to_definition()
        except IntegrityError as exc:
            raise DuplicateJobError(job.name) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error inserting job into database: {exc}") from exc

    def get_job(self, job_id: int) -> JobDefinition | None:
        try:
            with self._session() as session:
                row = session.get(JobRow, job_id)
                return row.to_definition() if row else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error querying job {job_id}: {exc}") from exc

    def name_exists(self, name: str) -> bool:
        stmt = select(func.count()).select_from(JobRow).where(JobRow.name == name)
        try:
            with self._session() as session:
                return bool(session.scalar(stmt))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error checking job name in database: {exc}") from exc

    def list_jobs(self, active_only: bool = False) -> list[JobDefinition]:
        stmt = select(JobRow).order_by(JobRow.id)
        if active_only:
            stmt = stmt.where(JobRow.active.is_(True))
        try:
            with self._session() as session:
                return [row.to_definition() for row in session.scalars(stmt)]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error listing jobs: {exc}") from exc

    def set_active(self, job_id: int, active: bool) -> JobDefinition:
        try:
            with self._session.begin() as session:
                row = session.get(JobRow, job_id)
                if row is None:
                    raise JobNotFoundError(job_id)
                if row.active != active:
                    row.active = active
                    row.updated_at = datetime.now()
                return row.to_definition()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error updating job {job_id}: {exc}") from exc

    # -- History --------------------------------------------------------------

    def append(self, record: ExecutionRecord) -> int:
        row = TaskRow(
            task_uid=record.uid,
            command=record.command,
            timestamp=record.timestamp,
            status=record.status.value,
            output=record.output,
        )
        try:
            with self._session.begin() as session:
                session.add(row)
                session.flush()
                return row.id
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error inserting into database: {exc}") from exc

    def get(self, uid: str) -> ExecutionRecord | None:
        stmt = select(TaskRow).where(TaskRow.task_uid == uid)
        try:
            with self._session() as session:
                row = session.scalars(stmt).first()
                return row.to_record() if row else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error querying database: {exc}") from exc

    def summarize(self) -> list[CommandSummary]:
        success = func.sum(case((TaskRow.status == ExecutionStatus.SUCCESS.value, 1), else_=0))
        failure = func.sum(case((TaskRow.status == ExecutionStatus.FAILURE.value, 1), else_=0))
        latest = (
            select(
                TaskRow.command,
                func.max(TaskRow.id).label("last_id"),
                success.label("success_count"),
                failure.label("failure_count"),
            )
            .group_by(TaskRow.command)
            .subquery()
        )
        stmt = (
            select(TaskRow, latest.c.success_count, latest.c.failure_count)
            .join(latest, TaskRow.id == latest.c.last_id)
            .order_by(TaskRow.timestamp.desc(), TaskRow.id.desc())
        )
        try:
            with self._session() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error querying database: {exc}") from exc

        return [
            CommandSummary(
                command=task.command,
                last_task_id=task.task_uid,
                last_run=task.timestamp,
                success_count=int(successes or 0),
                failure_count=int(failures or 0),
                last_output=task.output or "",
            )
            for task, successes, failures in rows
        ]

    def __repr__(self) -> str:
        return f"SqlBackend(url={self._engine.url!r})"
