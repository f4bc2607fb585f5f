"""
Rolling booking window.

Bookable dates are ``today + i`` for ``i in range(window_days)``, with
"today" taken in the organization's timezone.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from courtbook.core.timezones import local_midnight, today_in, utcnow
from courtbook.models.organization import Organization
from courtbook.services.org_settings import get_booking_settings


def bookable_dates(window_days: int, tz_name: str, now: Optional[datetime] = None) -> List[date]:
    today = today_in(tz_name, now)
    return [today + timedelta(days=i) for i in range(max(window_days, 0))]


def is_bookable_date(day: date, window_days: int, tz_name: str, now: Optional[datetime] = None) -> bool:
    today = today_in(tz_name, now)
    return today <= day < today + timedelta(days=window_days)


def booking_opens_at(day: date, window_days: int, tz_name: str) -> datetime:
    """
    Instant (UTC) shown as the opening countdown for a not-yet-bookable
    ``day``: local midnight of ``day - window_days``.
    """
    return local_midnight(day - timedelta(days=window_days), tz_name)


def get_bookable_dates(db: Session, org: Organization, now: Optional[datetime] = None) -> List[date]:
    booking_settings = get_booking_settings(db, org)
    return bookable_dates(booking_settings.booking_window_days, booking_settings.timezone, now or utcnow())
