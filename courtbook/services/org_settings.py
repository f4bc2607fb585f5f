"""Resolve an organization's effective booking settings."""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy.orm import Session

from courtbook.core.config import settings
from courtbook.models.organization import AppSetting, Organization
from courtbook.utils.timeslots import PeakWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingSettings:
    timezone: str
    currency: str
    booking_window_days: int
    payment_timeout_minutes: int
    max_consecutive_slots: int
    allow_guest_bookings: bool
    peak_window: PeakWindow


def _app_settings(db: Session) -> Dict[str, str]:
    return {row.key: row.value for row in db.query(AppSetting).all()}


def _int_setting(org_value: Optional[int], app_values: Dict[str, str], key: str, default: int) -> int:
    if org_value is not None:
        return org_value
    raw = app_values.get(key)
    if raw is not None:
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring non-integer app setting %s=%r", key, raw)
    return default


def get_booking_settings(db: Session, org: Organization) -> BookingSettings:
    """Organization value -> app_settings row -> built-in default."""
    app_values = _app_settings(db)
    return BookingSettings(
        timezone=org.timezone or settings.DEFAULT_TIMEZONE,
        currency=org.currency or settings.DEFAULT_CURRENCY,
        booking_window_days=_int_setting(
            org.booking_window_days, app_values, "booking_window_days", settings.DEFAULT_BOOKING_WINDOW_DAYS
        ),
        payment_timeout_minutes=_int_setting(
            org.payment_timeout_minutes, app_values, "payment_timeout_minutes", settings.DEFAULT_PAYMENT_TIMEOUT_MINUTES
        ),
        max_consecutive_slots=_int_setting(
            org.max_consecutive_slots, app_values, "max_consecutive_slots", settings.DEFAULT_MAX_CONSECUTIVE_SLOTS
        ),
        allow_guest_bookings=bool(org.allow_guest_bookings),
        peak_window=PeakWindow(
            org.peak_start_hour if org.peak_start_hour is not None else 18,
            org.peak_end_hour if org.peak_end_hour is not None else 21,
        ),
    )
