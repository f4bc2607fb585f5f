"""
Local time-of-day <-> absolute instant conversion.

Every place that turns an organization's wall-clock time into a stored
instant goes through ``local_to_utc`` so that DST transitions are handled
by the zone rules of the target date, never by fixed offsets.

Storage and comparisons are always UTC.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import pytz

from courtbook.core.config import settings


def get_timezone(tz_name: Optional[str]) -> pytz.BaseTzInfo:
    """Timezone object for an IANA name, falling back to the default zone."""
    try:
        return pytz.timezone(tz_name or settings.DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone(settings.DEFAULT_TIMEZONE)


def local_to_utc(day: date, time_of_day: time, tz_name: str) -> datetime:
    """
    Convert a local calendar date + time-of-day to an aware UTC datetime.

    - Ambiguous times (DST fall-back, the hour happens twice) resolve to the
      first occurrence.
    - Non-existent times (DST spring-forward gap) roll forward by the length
      of the gap, e.g. 02:30 on a 02:00->03:00 jump becomes 03:30.
    """
    tz = get_timezone(tz_name)
    naive_dt = datetime.combine(day, time_of_day)
    try:
        local_dt = tz.localize(naive_dt, is_dst=None)
    except pytz.exceptions.AmbiguousTimeError:
        local_dt = tz.localize(naive_dt, is_dst=True)
    except pytz.exceptions.NonExistentTimeError:
        local_dt = tz.normalize(tz.localize(naive_dt, is_dst=False))
    return local_dt.astimezone(timezone.utc)


def utc_to_local(dt: datetime, tz_name: str) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(get_timezone(tz_name))


def local_midnight(day: date, tz_name: str) -> datetime:
    return local_to_utc(day, time(0, 0), tz_name)


def local_day_bounds(day: date, tz_name: str) -> tuple[datetime, datetime]:
    """[start, end) of a local calendar day as UTC instants (23h/25h on DST days)."""
    return local_midnight(day, tz_name), local_midnight(day + timedelta(days=1), tz_name)


def today_in(tz_name: str, now: Optional[datetime] = None) -> date:
    """The calendar date in ``tz_name`` at ``now`` (default: current time)."""
    return utc_to_local(now or utcnow(), tz_name).date()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` (or ``HH:MM:SS``) time-of-day string."""
    parts = value.split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time of day: {value!r}")
    return time(int(parts[0]), int(parts[1]))
