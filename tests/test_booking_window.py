from datetime import date, datetime, timedelta, timezone

from courtbook.models import AppSetting
from courtbook.services.booking_window import (
    bookable_dates,
    booking_opens_at,
    get_bookable_dates,
    is_bookable_date,
)
from courtbook.services.org_settings import get_booking_settings

from tests.conftest import NOW, SGT, TODAY


def test_window_starts_today_in_org_zone():
    dates = bookable_dates(7, SGT, NOW)
    assert dates == [TODAY + timedelta(days=i) for i in range(7)]


def test_window_follows_local_midnight():
    # 00:30 in Singapore, still the previous evening in New York
    just_after_midnight = datetime(2026, 1, 4, 16, 30, tzinfo=timezone.utc)
    assert bookable_dates(3, SGT, just_after_midnight)[0] == date(2026, 1, 5)
    assert bookable_dates(3, "America/New_York", just_after_midnight)[0] == date(2026, 1, 4)


def test_zero_window_has_no_dates():
    assert bookable_dates(0, SGT, NOW) == []


def test_is_bookable_date_edges():
    assert is_bookable_date(TODAY, 7, SGT, NOW)
    assert is_bookable_date(TODAY + timedelta(days=6), 7, SGT, NOW)
    assert not is_bookable_date(TODAY + timedelta(days=7), 7, SGT, NOW)
    assert not is_bookable_date(TODAY - timedelta(days=1), 7, SGT, NOW)


def test_booking_opens_at_local_midnight_window_days_earlier():
    opens = booking_opens_at(date(2026, 1, 20), 7, SGT)
    assert opens == datetime(2026, 1, 12, 16, 0, tzinfo=timezone.utc)


def test_org_setting_wins(db, org):
    assert get_bookable_dates(db, org, NOW) == bookable_dates(7, SGT, NOW)


def test_app_setting_fallback(db, org):
    org.booking_window_days = None
    db.add(AppSetting(key="booking_window_days", value="3"))
    db.commit()
    assert get_bookable_dates(db, org, NOW) == [TODAY, TODAY + timedelta(days=1), TODAY + timedelta(days=2)]


def test_bad_app_setting_falls_back_to_default(db, org):
    org.payment_timeout_minutes = None
    db.add(AppSetting(key="payment_timeout_minutes", value="soon"))
    db.commit()
    assert get_booking_settings(db, org).payment_timeout_minutes == 10
