"""cronkeeper — cron-style shell command scheduler with durable run history."""

__version__ = "0.1.0"
