"""Core building blocks — cron evaluation, data model, command execution."""
