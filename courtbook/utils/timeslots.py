"""
Slot generation and peak pricing. Pure functions, no database access.

Prices are flat per slot: a slot of the court's configured duration is
charged the configured per-hour rate whatever its length. Multi-slot totals
are the sum of independently priced slots, so a booking that crosses the
peak boundary has mixed per-slot prices.
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable, List, NamedTuple, Optional

from courtbook.core.timezones import local_to_utc, utc_to_local

MINUTES_PER_DAY = 24 * 60


class PeakWindow(NamedTuple):
    """Weekday evening peak, local hours [start_hour, end_hour)."""

    start_hour: int = 18
    end_hour: int = 21


DEFAULT_PEAK_WINDOW = PeakWindow()


@dataclass(frozen=True)
class CandidateSlot:
    start: datetime  # UTC
    end: datetime  # UTC


@dataclass(frozen=True)
class PricedSlot:
    start: datetime
    end: datetime
    is_peak: bool
    price_cents: int


@dataclass(frozen=True)
class PriceBreakdown:
    slots: List[PricedSlot]
    total_cents: int
    currency: str


def _to_minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def _from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def generate_slots(
    open_time: time,
    close_time: time,
    slot_duration_minutes: int,
    day: date,
    tz_name: str,
) -> List[CandidateSlot]:
    """
    Every consecutive ``slot_duration_minutes`` interval from open to close on
    ``day`` in ``tz_name``, as absolute instants.

    A trailing partial slot that would end after close is not produced. On a
    DST spring-forward day a slot that starts inside the skipped hour has no
    length and is dropped; on a fall-back day the slot spanning the repeated
    hour is one hour longer in absolute time.
    """
    if slot_duration_minutes <= 0:
        raise ValueError("slot_duration_minutes must be positive")

    open_min = _to_minutes(open_time)
    close_min = _to_minutes(close_time)

    slots: List[CandidateSlot] = []
    current = open_min
    while current + slot_duration_minutes <= close_min:
        start = local_to_utc(day, _from_minutes(current), tz_name)
        end = local_to_utc(day, _from_minutes(current + slot_duration_minutes), tz_name)
        if end > start:
            slots.append(CandidateSlot(start=start, end=end))
        current += slot_duration_minutes
    return slots


def consecutive_slots(
    start_time: time,
    count: int,
    slot_duration_minutes: int,
    day: date,
    tz_name: str,
) -> List[CandidateSlot]:
    """``count`` back-to-back slots starting at local ``start_time`` on ``day``."""
    start_min = _to_minutes(start_time)
    slots = []
    for i in range(count):
        begin = start_min + i * slot_duration_minutes
        finish = begin + slot_duration_minutes
        if finish >= MINUTES_PER_DAY:
            raise ValueError("Slots cannot run past midnight")
        slots.append(
            CandidateSlot(
                start=local_to_utc(day, _from_minutes(begin), tz_name),
                end=local_to_utc(day, _from_minutes(finish), tz_name),
            )
        )
    return slots


def is_peak(weekday: int, hour: int, window: PeakWindow = DEFAULT_PEAK_WINDOW) -> bool:
    """
    Peak classification from the local weekday (Monday=0 .. Sunday=6) and the
    local start hour. Weekends are always peak.
    """
    if weekday >= 5:
        return True
    return window.start_hour <= hour < window.end_hour


def slot_price(
    price_per_hour_cents: int,
    peak_price_per_hour_cents: Optional[int],
    peak: bool,
) -> int:
    if peak and peak_price_per_hour_cents:
        return peak_price_per_hour_cents
    return price_per_hour_cents


def price_slot(court, start: datetime, end: datetime, tz_name: str, window: PeakWindow = DEFAULT_PEAK_WINDOW) -> PricedSlot:
    """Classify and price one slot of ``court`` by its own local start time."""
    local_start = utc_to_local(start, tz_name)
    peak = is_peak(local_start.weekday(), local_start.hour, window)
    return PricedSlot(
        start=start,
        end=end,
        is_peak=peak,
        price_cents=slot_price(court.price_per_hour_cents, court.peak_price_per_hour_cents, peak),
    )


def price_slots(
    court,
    slots: Iterable[CandidateSlot],
    tz_name: str,
    currency: str,
    window: PeakWindow = DEFAULT_PEAK_WINDOW,
) -> PriceBreakdown:
    priced = [price_slot(court, s.start, s.end, tz_name, window) for s in slots]
    return PriceBreakdown(
        slots=priced,
        total_cents=sum(p.price_cents for p in priced),
        currency=currency,
    )


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval overlap: [a) and [b) share at least one instant."""
    return start_a < end_b and end_a > start_b
