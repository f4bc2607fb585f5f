from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace

import pytest

from courtbook.core.timezones import utc_to_local
from courtbook.utils.timeslots import (
    PeakWindow,
    consecutive_slots,
    generate_slots,
    is_peak,
    overlaps,
    price_slot,
    price_slots,
    slot_price,
)

SGT = "Asia/Singapore"
NEW_YORK = "America/New_York"

court = SimpleNamespace(price_per_hour_cents=2000, peak_price_per_hour_cents=3000)


# ---------------------------------------------------------------------------
# Slot generation
# ---------------------------------------------------------------------------


def test_generate_full_day():
    slots = generate_slots(time(8, 0), time(22, 0), 60, date(2026, 1, 6), SGT)
    assert len(slots) == 14
    assert slots[0].start == datetime(2026, 1, 6, 0, 0, tzinfo=timezone.utc)
    assert slots[-1].end == datetime(2026, 1, 6, 14, 0, tzinfo=timezone.utc)
    for prev, nxt in zip(slots, slots[1:]):
        assert prev.end == nxt.start


def test_trailing_partial_slot_is_dropped():
    slots = generate_slots(time(8, 0), time(10, 30), 60, date(2026, 1, 6), SGT)
    assert len(slots) == 2

    slots = generate_slots(time(8, 0), time(22, 0), 90, date(2026, 1, 6), SGT)
    assert len(slots) == 9
    assert utc_to_local(slots[-1].end, SGT).time() == time(21, 30)


def test_rejects_non_positive_duration():
    with pytest.raises(ValueError):
        generate_slots(time(8, 0), time(22, 0), 0, date(2026, 1, 6), SGT)


def test_spring_forward_drops_the_missing_hour():
    slots = generate_slots(time(0, 0), time(5, 0), 60, date(2026, 3, 8), NEW_YORK)
    assert len(slots) == 4
    for slot in slots:
        assert slot.end - slot.start == timedelta(hours=1)
    assert [utc_to_local(s.start, NEW_YORK).hour for s in slots] == [0, 1, 3, 4]


def test_fall_back_keeps_the_repeated_hour_in_one_slot():
    slots = generate_slots(time(0, 0), time(3, 0), 60, date(2026, 11, 1), NEW_YORK)
    assert len(slots) == 3
    assert slots[1].end - slots[1].start == timedelta(hours=2)
    assert slots[0].end == slots[1].start


def test_consecutive_slots():
    slots = consecutive_slots(time(17, 0), 3, 60, date(2026, 1, 5), SGT)
    assert [utc_to_local(s.start, SGT).hour for s in slots] == [17, 18, 19]
    assert slots[-1].end == datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def test_consecutive_slots_cannot_cross_midnight():
    with pytest.raises(ValueError):
        consecutive_slots(time(23, 0), 2, 60, date(2026, 1, 5), SGT)


# ---------------------------------------------------------------------------
# Peak classification and pricing
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "hour, expected",
    [(0, False), (17, False), (18, True), (20, True), (21, False), (23, False)],
)
def test_weekday_peak_window(hour, expected):
    for weekday in range(5):
        assert is_peak(weekday, hour) is expected


def test_weekends_are_always_peak():
    for weekday in (5, 6):
        for hour in range(24):
            assert is_peak(weekday, hour)


def test_custom_peak_window():
    window = PeakWindow(17, 22)
    assert is_peak(2, 17, window)
    assert not is_peak(2, 22, window)


def test_slot_price_without_peak_rate_uses_base_rate():
    assert slot_price(2000, None, True) == 2000
    assert slot_price(2000, 3000, True) == 3000
    assert slot_price(2000, 3000, False) == 2000


def test_mixed_price_across_peak_boundary():
    # Monday 17:00, 18:00, 19:00 local: one off-peak slot and two peak slots
    slots = consecutive_slots(time(17, 0), 3, 60, date(2026, 1, 5), SGT)
    breakdown = price_slots(court, slots, SGT, "SGD")
    assert [p.price_cents for p in breakdown.slots] == [2000, 3000, 3000]
    assert [p.is_peak for p in breakdown.slots] == [False, True, True]
    assert breakdown.total_cents == 8000
    assert breakdown.currency == "SGD"


def test_weekend_morning_is_peak_priced():
    saturday = consecutive_slots(time(9, 0), 1, 60, date(2026, 1, 10), SGT)[0]
    priced = price_slot(court, saturday.start, saturday.end, SGT)
    assert priced.is_peak
    assert priced.price_cents == 3000


def test_price_uses_local_time_not_utc():
    # 18:00 Singapore is 10:00 UTC; peak must be decided on the local hour
    slot = consecutive_slots(time(18, 0), 1, 60, date(2026, 1, 6), SGT)[0]
    assert slot.start.hour == 10
    assert price_slot(court, slot.start, slot.end, SGT).is_peak


# ---------------------------------------------------------------------------
# Overlap
# ---------------------------------------------------------------------------


def test_half_open_overlap():
    base = datetime(2026, 1, 6, 2, 0, tzinfo=timezone.utc)
    hour = timedelta(hours=1)
    half = timedelta(minutes=30)
    assert overlaps(base, base + hour, base + half, base + hour + half)
    assert overlaps(base + half, base + hour + half, base, base + hour)
    assert not overlaps(base, base + hour, base + hour, base + 2 * hour)
    assert not overlaps(base + hour, base + 2 * hour, base, base + hour)
