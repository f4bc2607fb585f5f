from typing import List, Optional
from pydantic import BaseModel, UUID4
from datetime import date, datetime


# One generated slot of one court (GET /orgs/{slug}/courts/{id}/availability)
class SlotAvailability(BaseModel):
    start_time: datetime
    end_time: datetime
    is_available: bool
    is_peak: bool
    price_cents: int


class CourtAvailability(BaseModel):
    court_id: UUID4
    court_name: str
    date: date
    slots: List[SlotAvailability]


# Per-court breakdown inside an aggregated slot
class CourtSlotAvailability(BaseModel):
    court_id: UUID4
    court_name: str
    is_available: bool
    price_cents: int


# "N/M courts available" row of the calendar view
class AggregatedSlot(BaseModel):
    start_time: datetime
    end_time: datetime
    available_count: int
    total_courts: int
    is_peak: bool
    price_cents: int
    courts: List[CourtSlotAvailability]


class DayAvailability(BaseModel):
    date: date
    is_bookable: bool
    booking_opens_at: Optional[datetime] = None
    slots: List[AggregatedSlot] = []


class BookableDates(BaseModel):
    timezone: str
    window_days: int
    dates: List[date]
