"""Shared time utilities used by forecasting and availability matching."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

UTC = timezone.utc

WEEKDAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def parse_hhmm_to_minutes(value: str | None) -> int | None:
    """Parse HH:MM into minutes after midnight."""
    if not value or ":" not in str(value):
        return None
    try:
        hh, mm = str(value).split(":", 1)
        h = int(hh)
        m = int(mm)
    except (TypeError, ValueError):
        return None
    if h < 0 or h > 24 or m < 0 or m > 59 or (h == 24 and m):
        return None
    return h * 60 + m


def window_minutes(start: str | None, end: str | None) -> int:
    """Length of an HH:MM window in minutes (overnight windows wrap)."""
    s = parse_hhmm_to_minutes(start)
    e = parse_hhmm_to_minutes(end)
    if s is None or e is None:
        return 0
    diff = e - s
    if diff < 0:
        diff += 24 * 60
    return diff


def week_key(d: date) -> str:
    """ISO date of the Monday starting the week containing ``d``."""
    monday = d.fromordinal(d.toordinal() - d.weekday())
    return monday.isoformat()


def is_weekend(d: date) -> bool:
    return d.weekday() >= 5


def daterange(start: date, end: date) -> list[date]:
    """Inclusive list of days from start to end; empty when end < start."""
    if end < start:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def now_utc() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


def as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value
