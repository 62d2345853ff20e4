"""
Billboard Rental Core - Date Rules
==================================

Pure helpers shared by the stores and the coordinator:
- normalize_date: any accepted input -> UTC calendar date
- overlaps: closed-interval intersection (same-day handoff IS a conflict)
- is_active_on: does an interval contain a given day
"""

from datetime import date, datetime, timezone
from typing import Union

from exceptions import ValidationError

DateInput = Union[str, date, datetime]


def today_utc() -> date:
    """Current calendar day in UTC."""
    return datetime.now(timezone.utc).date()


def normalize_date(value: DateInput) -> date:
    """
    Converts an ISO-8601 string, date or datetime to a UTC calendar date.

    Naive datetimes are taken as UTC; aware ones are converted to UTC first,
    so "2025-01-10T23:30:00-03:00" becomes 2025-01-11.

    Raises:
        ValidationError: value is empty, of an unsupported type or not ISO-8601
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"invalid date: {value!r}")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"invalid ISO-8601 date: {value!r}")
    return normalize_date(parsed)


def normalize_range(start: DateInput, end: DateInput) -> tuple:
    """Normalizes both ends and rejects start > end."""
    start_day = normalize_date(start)
    end_day = normalize_date(end)
    if start_day > end_day:
        raise ValidationError(f"start date {start_day} is after end date {end_day}")
    return start_day, end_day


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Closed intervals [a_start, a_end] and [b_start, b_end] share at least one day."""
    return a_start <= b_end and a_end >= b_start


def is_active_on(start: date, end: date, reference_date: date) -> bool:
    """The closed interval [start, end] contains reference_date."""
    return start <= reference_date <= end
