"""Timestamp helpers shared by ingestion and the read path.

Timestamps are stored as naive UTC datetimes throughout.
"""
import calendar
import math
from datetime import datetime, timezone


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(raw: str) -> datetime:
    """Parse an upstream timestamp.

    Accepts ISO-8601 with ``Z`` or an explicit offset, and the
    space-separated ``YYYY-MM-DD HH:MM:SS(.fff)`` form Uptime Kuma emits.

    Raises:
        ValueError: If the value is empty or not a recognised timestamp
    """
    if not raw or not isinstance(raw, str):
        raise ValueError(f"Invalid timestamp: {raw!r}")
    text = raw.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(text))


def subtract_months(value: datetime, months: int) -> datetime:
    """Step back a number of calendar months, clamping the day to the month's end."""
    month_index = value.year * 12 + (value.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, halves rounded up."""
    return math.floor((end - start).total_seconds() / 60 + 0.5)
