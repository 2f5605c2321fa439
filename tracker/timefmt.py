"""Format upstream ISO timestamps for display in the delivery's local timezone."""
from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from typing import Literal, Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

LOCAL_TIMEZONE = ZoneInfo(os.environ.get("TRACKER_TIMEZONE", "America/Vancouver"))
PRESENT_WINDOW_MINUTES = 5

TimeStatus = Literal["past", "present", "future"]

__all__ = [
    "LOCAL_TIMEZONE",
    "current_local_time",
    "format_local_time",
    "format_planned_time",
    "format_short_date",
    "format_time_only",
    "get_relative_time",
    "get_time_status",
    "is_time_in_past",
    "parse_timestamp",
]


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Return an aware UTC datetime for ``value`` or ``None`` when unparseable.

    Naive timestamps are assumed to be UTC.
    """

    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        logger.debug("Unparseable timestamp %r", value)
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(UTC)
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now


def _clock(local: datetime, *, seconds: bool = False) -> str:
    fmt = "%I:%M:%S %p" if seconds else "%I:%M %p"
    return local.strftime(fmt)


def _long_date(local: datetime) -> str:
    return f"{local.strftime('%B')} {local.day}, {local.year}"


def format_planned_time(value: Optional[str]) -> str:
    """``Friday, October 16, 2026 at 02:05 PM PDT``."""

    moment = parse_timestamp(value)
    if moment is None:
        return "Invalid date"
    local = moment.astimezone(LOCAL_TIMEZONE)
    return f"{local.strftime('%A')}, {_long_date(local)} at {_clock(local)} {local.tzname()}"


def format_short_date(value: Optional[str]) -> str:
    """``MM/DD/YYYY`` in local time."""

    moment = parse_timestamp(value)
    if moment is None:
        return "Invalid date"
    return moment.astimezone(LOCAL_TIMEZONE).strftime("%m/%d/%Y")


def format_time_only(value: Optional[str]) -> str:
    moment = parse_timestamp(value)
    if moment is None:
        return "Invalid time"
    return _clock(moment.astimezone(LOCAL_TIMEZONE))


def format_local_time(value: Optional[str], *, include_weekday: bool = False, include_seconds: bool = False) -> str:
    moment = parse_timestamp(value)
    if moment is None:
        return "Invalid date"
    local = moment.astimezone(LOCAL_TIMEZONE)
    text = f"{_long_date(local)} at {_clock(local, seconds=include_seconds)} {local.tzname()}"
    if include_weekday:
        text = f"{local.strftime('%A')}, {text}"
    return text


def current_local_time(now: Optional[datetime] = None) -> str:
    local = _now(now).astimezone(LOCAL_TIMEZONE)
    return f"{_long_date(local)} at {_clock(local, seconds=True)} {local.tzname()}"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def get_relative_time(value: Optional[str], *, now: Optional[datetime] = None) -> str:
    """Describe ``value`` relative to ``now``: ``in 2 hours`` or ``3 days ago``.

    The largest whole unit wins, so 90 minutes reads as ``in 1 hour``.
    """

    moment = parse_timestamp(value)
    if moment is None:
        return "Invalid date"

    delta_seconds = (moment - _now(now)).total_seconds()
    magnitude = abs(delta_seconds)
    days = int(magnitude // 86_400)
    hours = int(magnitude // 3_600)
    minutes = int(magnitude // 60)

    if days > 0:
        phrase = _plural(days, "day")
    elif hours > 0:
        phrase = _plural(hours, "hour")
    else:
        phrase = _plural(minutes, "minute")

    if delta_seconds < 0:
        return f"{phrase} ago"
    return f"in {phrase}"


def is_time_in_past(value: Optional[str], *, now: Optional[datetime] = None) -> bool:
    moment = parse_timestamp(value)
    if moment is None:
        return False
    return moment < _now(now)


def get_time_status(value: Optional[str], *, now: Optional[datetime] = None) -> TimeStatus:
    moment = parse_timestamp(value)
    if moment is None:
        return "present"
    current = _now(now)
    if abs((moment - current).total_seconds()) < (PRESENT_WINDOW_MINUTES + 1) * 60:
        return "present"
    if moment < current:
        return "past"
    return "future"
