from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, UUID4
from datetime import date, datetime, time


# Recurring booking: Create (POST /admin/orgs/{slug}/recurring-bookings)
class RecurringBookingCreate(BaseModel):
    court_id: UUID4
    title: str = Field(min_length=1, max_length=200)
    day_of_week: int = Field(ge=0, le=6)  # 0=Sunday .. 6=Saturday
    start_time: str = Field(pattern=r"^\d{2}:\d{2}$")
    end_time: str = Field(pattern=r"^\d{2}:\d{2}$")
    starts_on: date
    ends_on: date
    notes: Optional[str] = Field(default=None, max_length=500)


class RecurringBooking(BaseModel):
    id: UUID4
    organization_id: UUID4
    court_id: UUID4
    title: str
    day_of_week: int
    start_time: time
    end_time: time
    starts_on: date
    ends_on: date
    frequency: str
    notes: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RecurringBookingCreated(BaseModel):
    recurring_id: UUID4
    created: int
    skipped: int
    message: str


class RecurringBookingCancelled(BaseModel):
    recurring_id: UUID4
    cancelled_count: int
    message: str
