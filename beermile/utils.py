"""Time and calendar helpers for the Beer Mile planner."""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime

from django.conf import settings
from django.utils import timezone

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

__all__ = [
    "parse_time",
    "format_time",
    "parse_seconds",
    "to_iso_date",
    "from_iso_date",
    "local_today",
    "is_past_date",
    "three_month_window",
    "is_outside_window",
    "is_leap_year",
    "days_in_month",
    "month_bounds",
    "parse_month",
    "calendar_grid",
]


def parse_time(value: str) -> int:
    """Parse ``M:SS`` strings (or bare seconds) into whole seconds."""

    text = (value or "").strip()
    if not text:
        raise ValueError("Time is required.")
    if ":" not in text:
        if not text.isdigit():
            raise ValueError("Use M:SS or whole seconds for times.")
        return int(text)
    parts = text.split(":")
    if len(parts) != 2:
        raise ValueError("Use M:SS or whole seconds for times.")
    minutes, seconds = parts
    if not (minutes.isdigit() and seconds.isdigit()):
        raise ValueError("Invalid time value supplied.")
    if int(seconds) >= 60:
        raise ValueError("Seconds must be below 60.")
    return int(minutes) * 60 + int(seconds)


def format_time(seconds: int) -> str:
    """Format whole seconds as ``M:SS``."""

    if isinstance(seconds, bool) or seconds < 0:
        raise ValueError("Time cannot be negative.")
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


def parse_seconds(value: int | str | None, *, maximum: int | None = None) -> int:
    """Coerce API input into bounded whole seconds."""

    if maximum is None:
        maximum = getattr(settings, "BEERMILE_MAX_TIME_SECONDS", 1200)
    if value is None or isinstance(value, bool):
        raise ValueError("Time must be a whole number of seconds.")
    if isinstance(value, float):
        if value != int(value):
            raise ValueError("Time must be a whole number of seconds.")
        candidate = int(value)
    elif isinstance(value, int):
        candidate = value
    else:
        candidate = parse_time(str(value))
    if not 0 <= candidate <= maximum:
        raise ValueError(f"Time must be between 0 and {maximum} seconds.")
    return candidate


def to_iso_date(value: date) -> str:
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def from_iso_date(value: str) -> date:
    """Parse ``YYYY-MM-DD`` into a calendar date."""

    text = (value or "").strip()
    if not ISO_DATE_PATTERN.match(text):
        raise ValueError(f"Invalid date '{value}'. Use YYYY-MM-DD.")
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Invalid date '{value}'. Use YYYY-MM-DD.") from exc


def local_today() -> date:
    return timezone.localdate()


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            return timezone.localtime(value).date()
        return value.date()
    return value


def is_past_date(value: date | datetime, today: date | None = None) -> bool:
    """Return True when the calendar day falls strictly before today."""

    today = today or local_today()
    return _as_date(value) < today


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def days_in_month(year: int, month: int) -> int:
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12.")
    if month == 2:
        return 29 if is_leap_year(year) else 28
    return 30 if month in (4, 6, 9, 11) else 31


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def three_month_window(today: date | None = None) -> tuple[date, date]:
    """Return the first and last day that availability may be marked for.

    The window covers the current calendar month plus the following months
    up to ``BEERMILE_AVAILABILITY_WINDOW_MONTHS`` in total.
    """

    today = today or local_today()
    months = max(1, getattr(settings, "BEERMILE_AVAILABILITY_WINDOW_MONTHS", 3))
    start = today.replace(day=1)
    end_year, end_month = _shift_month(today.year, today.month, months - 1)
    end = date(end_year, end_month, days_in_month(end_year, end_month))
    return start, end


def is_outside_window(value: date | datetime, today: date | None = None) -> bool:
    _, end = three_month_window(today)
    return _as_date(value) > end


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def parse_month(value: str | None, today: date | None = None) -> tuple[int, int]:
    """Parse ``YYYY-MM``; an empty value means the current month."""

    if not value:
        today = today or local_today()
        return today.year, today.month
    parts = value.strip().split("-")
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        raise ValueError("Invalid month parameter. Use YYYY-MM format.")
    year, month = int(parts[0]), int(parts[1])
    if not 1 <= month <= 12 or year < 1:
        raise ValueError("Invalid month parameter. Use YYYY-MM format.")
    return year, month


def calendar_grid(year: int, month: int) -> list[list[int | None]]:
    """Sunday-first weeks for a month, padded with ``None``."""

    weeks = calendar.Calendar(firstweekday=calendar.SUNDAY).monthdayscalendar(year, month)
    return [[day or None for day in week] for week in weeks]
