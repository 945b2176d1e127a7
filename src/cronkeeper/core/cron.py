"""Cron expression evaluation — "does this schedule fire at minute M?".

Only classic 5-field expressions are accepted: minute, hour, day-of-month,
month, day-of-week. Field semantics follow standard cron (day-of-week 0 is
Sunday, and when both day fields are restricted either one may match).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from croniter import croniter

from cronkeeper.errors import InvalidScheduleError


CRON_FIELDS = ("minute", "hour", "day", "month", "day_of_week")

# Inclusive bounds per field
FIELD_BOUNDS: dict[str, tuple[int, int]] = {
    "minute": (0, 59),
    "hour": (0, 23),
    "day": (1, 31),
    "month": (1, 12),
    "day_of_week": (0, 6),
}

_NAMES: dict[str, dict[str, int]] = {
    "month": {
        name: number
        for number, name in enumerate(
            ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"),
            start=1,
        )
    },
    "day_of_week": {
        name: number
        for number, name in enumerate(("sun", "mon", "tue", "wed", "thu", "fri", "sat"))
    },
}


def parse_cron(cron_expr: str) -> dict[str, str]:
    """Split a 5-field cron expression into named fields.

    Format: "minute hour day month day_of_week"
    Example: "30 2 * * *" → {"minute": "30", "hour": "2", ...}

    Raises:
        InvalidScheduleError: If expression doesn't have exactly 5 fields.
    """
    parts = cron_expr.strip().split()
    if len(parts) != len(CRON_FIELDS):
        msg = f"Cron expression must have 5 fields, got {len(parts)}: '{cron_expr}'"
        raise InvalidScheduleError(msg)
    return dict(zip(CRON_FIELDS, parts))


def _field_value(field: str, token: str) -> int:
    if token.isdigit():
        return int(token)
    try:
        return _NAMES[field][token.lower()]
    except KeyError:
        raise ValueError(f"{field} has unknown value '{token}'") from None


def _check_field(field: str, value: str) -> None:
    """Bounds-check every list item, range end and step of one field."""
    low, high = FIELD_BOUNDS[field]
    for item in value.split(","):
        base, sep, step = item.partition("/")
        if sep and (not step.isdigit() or int(step) == 0):
            raise ValueError(f"{field} has invalid step '{item}'")
        if base == "*":
            continue
        start, sep, end = base.partition("-")
        first = _field_value(field, start)
        last = _field_value(field, end) if sep else first
        for number in (first, last):
            if not low <= number <= high:
                raise ValueError(f"{field} value {number} out of range {low}-{high}")
        if first > last:
            raise ValueError(f"{field} range '{base}' runs backwards")


def validate_cron(cron_expr: str) -> str:
    """Return the whitespace-normalized expression or raise.

    Raises:
        InvalidScheduleError: Wrong field count, unknown tokens, values
            outside the field's range (e.g. minute 60, day-of-week 7) or
            backwards ranges.
    """
    fields = parse_cron(cron_expr)
    normalized = " ".join(fields.values())
    try:
        for field, value in fields.items():
            _check_field(field, value)
        croniter(normalized)
    except ValueError as exc:  # CroniterError derives from ValueError
        msg = f"Invalid cron expression '{normalized}': {exc}"
        raise InvalidScheduleError(msg) from exc
    return normalized


def floor_minute(when: datetime) -> datetime:
    """Drop seconds and microseconds."""
    return when.replace(second=0, microsecond=0)


def cron_matches(cron_expr: str, when: datetime) -> bool:
    """Whether ``cron_expr`` fires at the minute containing ``when``."""
    return CronSchedule.parse(cron_expr).matches(when)


@dataclass(frozen=True)
class CronSchedule:
    """A validated cron expression. Build with :meth:`parse`."""

    expression: str

    @classmethod
    def parse(cls, cron_expr: str) -> CronSchedule:
        return cls(validate_cron(cron_expr))

    def matches(self, when: datetime) -> bool:
        return bool(croniter.match(self.expression, floor_minute(when)))

    def __str__(self) -> str:
        return self.expression
