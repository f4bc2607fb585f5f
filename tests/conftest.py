import os

# Settings are read at import time; point the app at throwaway values first.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CREATE_DATABASE_ON_STARTUP", "false")
os.environ.setdefault("EXPIRY_SWEEP_INTERVAL_SECONDS", "0")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "test-webhook-secret")

from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from sqlalchemy.orm import sessionmaker

from courtbook.core.timezones import local_to_utc
from courtbook.db.base import Base
from courtbook.db.session import build_engine
from courtbook.models import (
    Booking,
    BookingSlot,
    BookingStatus,
    Court,
    Organization,
    OrganizationMember,
    Payment,
    PaymentStatus,
    User,
)
from courtbook.services.payments import CheckoutSession

SGT = "Asia/Singapore"

# Monday 2026-01-05 10:00 in Singapore
NOW = datetime(2026, 1, 5, 2, 0, tzinfo=timezone.utc)
TODAY = date(2026, 1, 5)
TUESDAY = date(2026, 1, 6)


def sgt(day: date, hour: int, minute: int = 0) -> datetime:
    return local_to_utc(day, time(hour, minute), SGT)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def engine(tmp_path):
    # File-backed so that several threads can hold their own connections
    eng = build_engine(f"sqlite:///{tmp_path / 'courtbook-test.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


def make_user(db, email: str, verified: bool = True, role: str = "user") -> User:
    user = User(email=email, full_name=email.split("@")[0].title(), email_verified=verified, role=role)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def org(db) -> Organization:
    organization = Organization(
        slug="smash-club",
        name="Smash Club",
        timezone=SGT,
        currency="SGD",
        booking_window_days=7,
        payment_timeout_minutes=10,
        max_consecutive_slots=3,
        allow_guest_bookings=False,
    )
    db.add(organization)
    db.commit()
    return organization


@pytest.fixture
def other_org(db) -> Organization:
    organization = Organization(slug="rival-club", name="Rival Club", timezone=SGT, currency="SGD")
    db.add(organization)
    db.commit()
    return organization


def make_court(db, org: Organization, name: str, sort_order: int = 0, **overrides) -> Court:
    values = dict(
        organization_id=org.id,
        name=name,
        open_time=time(8, 0),
        close_time=time(22, 0),
        slot_duration_minutes=60,
        price_per_hour_cents=2000,
        peak_price_per_hour_cents=3000,
        sort_order=sort_order,
    )
    values.update(overrides)
    court = Court(**values)
    db.add(court)
    db.commit()
    return court


@pytest.fixture
def courts(db, org) -> List[Court]:
    return [make_court(db, org, "Court 1", 1), make_court(db, org, "Court 2", 2)]


@pytest.fixture
def court(courts) -> Court:
    return courts[0]


@pytest.fixture
def user(db) -> User:
    return make_user(db, "player@example.com")


@pytest.fixture
def other_user(db) -> User:
    return make_user(db, "rival@example.com")


@pytest.fixture
def unverified_user(db) -> User:
    return make_user(db, "newbie@example.com", verified=False)


@pytest.fixture
def admin(db, org) -> User:
    admin_user = make_user(db, "manager@example.com")
    db.add(OrganizationMember(organization_id=org.id, user_id=admin_user.id, role="admin"))
    db.commit()
    return admin_user


def add_booking(
    db,
    org: Organization,
    court: Court,
    start: datetime,
    end: datetime,
    status: BookingStatus = BookingStatus.CONFIRMED,
    user: Optional[User] = None,
    expires_at: Optional[datetime] = None,
    price: int = 2000,
) -> Booking:
    """Insert a booking directly, bypassing the reservation path."""
    booking = Booking(
        organization_id=org.id,
        user_id=user.id if user else None,
        total_cents=price,
        currency="SGD",
        status=status,
        expires_at=expires_at if status == BookingStatus.PENDING_PAYMENT else None,
    )
    db.add(booking)
    db.flush()
    db.add(
        BookingSlot(
            organization_id=org.id,
            booking_id=booking.id,
            court_id=court.id,
            start_time=start,
            end_time=end,
            price_in_cents=price,
        )
    )
    db.add(
        Payment(
            organization_id=org.id,
            booking_id=booking.id,
            user_id=booking.user_id,
            amount_cents=price,
            currency="SGD",
            status=PaymentStatus.PENDING if status == BookingStatus.PENDING_PAYMENT else PaymentStatus.COMPLETED,
        )
    )
    db.commit()
    return booking


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeGateway:
    def __init__(self, status: str = "pending"):
        self.status = status
        self.created: List[Dict] = []

    def create_payment(self, amount_cents, currency, metadata):
        self.created.append({"amount_cents": amount_cents, "currency": currency, **metadata})
        external_id = f"pr_{len(self.created)}"
        return CheckoutSession(external_id=external_id, redirect_url=f"https://pay.example.com/{external_id}")

    def get_payment_status(self, external_id):
        return self.status


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events = []

    def _record(self, event, booking, **kwargs):
        if self.fail:
            raise RuntimeError("mail server down")
        self.events.append((event, booking.id, kwargs))

    def booking_confirmed(self, booking):
        self._record("confirmed", booking)

    def booking_cancelled(self, booking, refund_cents=None):
        self._record("cancelled", booking, refund_cents=refund_cents)

    def booking_expired(self, booking):
        self._record("expired", booking)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


def later(minutes: int) -> datetime:
    return NOW + timedelta(minutes=minutes)
