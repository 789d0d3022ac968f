"""
Standardized Date/Time Handling Utilities

Every "today", streak, and reminder computation goes through a Clock so the
local timezone and current instant can be controlled in one place:

- SystemClock reads the wall clock in the configured timezone
- FixedClock returns a pinned instant (tests, day-boundary simulation)

RULES:
- Clock.now() is always timezone-aware
- Calendar dates are plain date objects, serialized as YYYY-MM-DD
- Mood timestamps are epoch milliseconds
"""

import logging
import re
from datetime import datetime, date, time, timedelta
from typing import Optional, Protocol, Union
from zoneinfo import ZoneInfo

from nomi.config import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)

_HHMM_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


class Clock(Protocol):
    """Source of the current instant and local timezone"""

    @property
    def tz(self) -> ZoneInfo: ...

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in a fixed IANA timezone"""

    def __init__(self, timezone: str = DEFAULT_TIMEZONE):
        self._tz = ZoneInfo(timezone)

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz)


class FixedClock:
    """
    Clock pinned to a given instant

    Naive datetimes are interpreted in the clock's timezone. advance() moves
    the pinned instant forward so tests can cross day boundaries.
    """

    def __init__(self, current: datetime, timezone: str = DEFAULT_TIMEZONE):
        self._tz = ZoneInfo(timezone)
        if current.tzinfo is None:
            current = current.replace(tzinfo=self._tz)
        self._current = current.astimezone(self._tz)

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        if current.tzinfo is None:
            current = current.replace(tzinfo=self._tz)
        self._current = current.astimezone(self._tz)

    def advance(self, **kwargs) -> datetime:
        self._current = self._current + timedelta(**kwargs)
        return self._current


def today(clock: Clock) -> date:
    """Current calendar date in the clock's timezone"""
    return clock.now().date()


def now_ms(clock: Clock) -> int:
    """Current instant as epoch milliseconds"""
    return int(clock.now().timestamp() * 1000)


def format_date(value: date) -> str:
    """Format a date as YYYY-MM-DD"""
    return value.isoformat()


def parse_date(value: Union[str, date, datetime]) -> date:
    """
    Parse a YYYY-MM-DD string (or pass through a date)

    Raises:
        ValueError: If value is not a valid date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def add_days(value: Union[str, date], days: int) -> str:
    """Shift a YYYY-MM-DD date by a number of days"""
    return format_date(parse_date(value) + timedelta(days=days))


def parse_iso_datetime(value: Union[str, datetime], tz: ZoneInfo) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware datetime in tz

    Accepts a trailing 'Z'. Naive values are interpreted in tz.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


def local_date_of(value: Union[str, datetime], tz: ZoneInfo) -> date:
    """Calendar date (in tz) that an ISO timestamp falls on"""
    return parse_iso_datetime(value, tz).date()


def parse_hhmm(value: str) -> Optional[time]:
    """
    Parse an "HH:MM" reminder time

    Returns:
        time object, or None if the string is malformed or out of range
    """
    if not isinstance(value, str):
        return None
    match = _HHMM_PATTERN.match(value)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return time(hour=hours, minute=minutes)


def at_time_on(day: date, at: time, tz: ZoneInfo) -> datetime:
    """Aware datetime for a wall-clock time on a given day"""
    return datetime.combine(day, at, tzinfo=tz)


def next_occurrence(at: time, now: datetime, min_lead: timedelta = timedelta(minutes=1)) -> datetime:
    """
    Next occurrence of a daily wall-clock time

    Today at HH:MM if that is still more than min_lead in the future,
    otherwise tomorrow at HH:MM.

    Args:
        at: Reminder time of day
        now: Current aware datetime (its tzinfo is the local zone)
        min_lead: How far in the future today's slot must be

    Returns:
        Aware datetime strictly after now
    """
    candidate = at_time_on(now.date(), at, now.tzinfo)
    if candidate - now > min_lead:
        return candidate
    return at_time_on(now.date() + timedelta(days=1), at, now.tzinfo)


def time_slug(value: str) -> str:
    """'09:00' -> '0900' for deterministic identifiers"""
    return value.replace(":", "")
