"""Date helpers for due dates and timestamps."""

from __future__ import annotations

import datetime as dt


def utc_now() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    stamp = dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def today() -> dt.date:
    return dt.date.today()


def parse_due_date(value: str | None) -> dt.date | None:
    """Parse a due date into a calendar date.

    Accepts ``YYYY-MM-DD`` or a full ISO datetime, reduced to its date.
    Offset-aware datetimes are converted to local time first.
    Empty values return None; anything else unparseable raises ValueError.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return dt.date.fromisoformat(text)
    except ValueError:
        pass
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = dt.datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.date()


def is_valid_due_date(value: str | None) -> bool:
    try:
        parse_due_date(value)
    except ValueError:
        return False
    return True


def _due(value: str | None) -> dt.date | None:
    try:
        return parse_due_date(value)
    except ValueError:
        return None


def is_overdue(due_date: str | None, on: dt.date | None = None) -> bool:
    due = _due(due_date)
    if due is None:
        return False
    return due < (on or today())


def is_due_today(due_date: str | None, on: dt.date | None = None) -> bool:
    due = _due(due_date)
    if due is None:
        return False
    return due == (on or today())


def format_date_short(value: str | None) -> str:
    """``Jan 15`` style label, empty for missing or bad input."""
    due = _due(value)
    if due is None:
        return ""
    return f"{due.strftime('%b')} {due.day}"


def format_date_full(value: str | None) -> str:
    """``January 15, 2024`` style label, empty for missing or bad input."""
    due = _due(value)
    if due is None:
        return ""
    return f"{due.strftime('%B')} {due.day}, {due.year}"


def to_input_date(value: str | None) -> str:
    due = _due(value)
    return due.isoformat() if due is not None else ""
