"""Pydantic-based settings loaded entirely from environment variables.

All configuration is read from ``.env`` (or real env vars). Every field has a
sensible default, so a bare checkout runs against ``./logs`` and
``./database``.

Usage::

    from cronkeeper.config import get_settings
    settings = get_settings()
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration — every field maps to an UPPER_SNAKE env var."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        env_ignore_empty=True,
    )

    # -- Locations ----------------------------------------------------------
    log_dir: str = "logs"
    db_dir: str = "database"
    database_url: str = ""  # overrides the SQLite file under db_dir
    jobs_file: str = "cron_jobs.txt"
    mirror_jobs_file: bool = True

    # -- Status server ------------------------------------------------------
    endpoint: str = "localhost:8080"
    status_server_enabled: bool = True

    # -- Scheduling ---------------------------------------------------------
    timezone: str = ""  # empty = host local time
    misfire_grace_time: int = 30
    reconcile_on_tick: bool = True
    overlap_policy: Literal["allow", "skip"] = "allow"

    # -- Execution ----------------------------------------------------------
    shell: str = "bash"
    max_workers: int = Field(default=20, ge=1)
    job_timeout_seconds: float = Field(default=0, ge=0)  # 0 = no deadline

    # -- General ------------------------------------------------------------
    timestamp_format: str = "%d-%m-%Y %H:%M:%S"
    log_level: str = "INFO"

    @field_validator("endpoint")
    @classmethod
    def check_endpoint(cls, value: str) -> str:
        """Require ``host:port`` with a numeric port."""
        host, sep, port = value.rpartition(":")
        if not sep or not port.isdigit():
            msg = f"ENDPOINT must look like 'host:port', got '{value}'"
            raise ValueError(msg)
        return value

    # -- Derived values -----------------------------------------------------
    @property
    def log_file_path(self) -> Path:
        return Path(self.log_dir) / "scheduler.log"

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{Path(self.db_dir) / 'jobs.db'}"

    @property
    def listen_address(self) -> tuple[str, int]:
        host, _, port = self.endpoint.rpartition(":")
        return host or "0.0.0.0", int(port)

    @property
    def job_timeout(self) -> float | None:
        return self.job_timeout_seconds or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance.

    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    return Settings()
