"""Provide utility helpers for timestamps and identifiers."""

from __future__ import annotations

import calendar
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return _ensure_utc(value).isoformat()


def _ensure_utc(value: datetime) -> datetime:
    # Naive timestamps are treated as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_iso(value: object) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return _ensure_utc(value)
    try:
        if not isinstance(value, str):
            value = str(value)
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        return _ensure_utc(datetime.fromisoformat(value))
    except ValueError:
        return None


def _days_between(start: datetime, end: datetime) -> float:
    """Fractional days from *start* to *end* (negative if *end* is earlier)."""
    return (_ensure_utc(end) - _ensure_utc(start)).total_seconds() / 86400.0


def add_months(value: datetime, months: int) -> datetime:
    """Shift *value* by whole calendar months.

    The day of month is clamped to the last day of the target month, so
    January 31st plus one month is the last day of February.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(value.day, last_day))


def add_days(value: datetime, days: int) -> datetime:
    return value + timedelta(days=days)
