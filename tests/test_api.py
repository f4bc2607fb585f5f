from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from courtbook.core.exceptions import PaymentGatewayError
from courtbook.core.ratelimit import InMemoryRateLimiter, get_booking_rate_limiter
from courtbook.core.security import create_access_token
from courtbook.core.timezones import today_in
from courtbook.db.session import get_db
from courtbook.main import app
from courtbook.models import Booking, BookingStatus, Guest
from courtbook.services.payments import get_payment_gateway

from tests.conftest import SGT, FakeGateway, sgt

API = "/api/v1"
ORG = f"{API}/orgs/smash-club"


@pytest.fixture
def limiter():
    return InMemoryRateLimiter(max_attempts=100, window_seconds=60)


@pytest.fixture
def client(db, limiter, gateway):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_booking_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    # Not used as a context manager: the startup hooks (database creation,
    # expiry loop) stay out of the tests.
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(user):
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


def tomorrow():
    return today_in(SGT) + timedelta(days=1)


def slot_body(court, hour, price=None):
    start = sgt(tomorrow(), hour)
    body = {
        "court_id": str(court.id),
        "start_time": start.isoformat(),
        "end_time": (start + timedelta(hours=1)).isoformat(),
    }
    if price is not None:
        body["price_in_cents"] = price
    return body


def book(client, user, court, hour):
    return client.post(f"{ORG}/bookings", json={"slots": [slot_body(court, hour)]}, headers=auth(user))


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


def test_bookable_dates(client, org):
    response = client.get(f"{ORG}/bookable-dates")
    assert response.status_code == 200
    data = response.json()
    assert data["timezone"] == SGT
    assert data["window_days"] == 7
    assert len(data["dates"]) == 7
    assert data["dates"][0] == today_in(SGT).isoformat()


def test_unknown_org(client, org):
    response = client.get(f"{API}/orgs/nowhere/bookable-dates")
    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


def test_day_availability(client, org, courts, user):
    assert book(client, user, courts[0], 10).status_code == 201

    response = client.get(f"{ORG}/availability", params={"date": tomorrow().isoformat()})
    assert response.status_code == 200
    data = response.json()
    assert data["is_bookable"] is True
    assert len(data["slots"]) == 14
    ten = data["slots"][2]
    assert ten["total_courts"] == 2
    assert ten["available_count"] == 1


def test_court_availability_and_calendar(client, org, court):
    response = client.get(f"{ORG}/courts/{court.id}/availability", params={"date": tomorrow().isoformat()})
    assert response.status_code == 200
    assert len(response.json()["slots"]) == 14

    calendar = client.get(f"{ORG}/calendar").json()
    assert len(calendar) == 8
    assert calendar[-1]["is_bookable"] is False
    assert calendar[-1]["booking_opens_at"] is not None


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------


def test_reservation_requires_sign_in(client, org, court):
    response = client.post(f"{ORG}/bookings", json={"slots": [slot_body(court, 10)]})
    assert response.status_code == 401
    assert response.json()["error"] == "NOT_AUTHENTICATED"
    assert response.headers["www-authenticate"] == "Bearer"


def test_bad_token(client, org, court):
    response = client.post(
        f"{ORG}/bookings", json={"slots": [slot_body(court, 10)]}, headers={"Authorization": "Bearer nonsense"}
    )
    assert response.status_code == 401


def test_unverified_email(client, org, court, unverified_user):
    response = book(client, unverified_user, court, 10)
    assert response.status_code == 403
    assert response.json()["error"] == "EMAIL_UNVERIFIED"


def test_reservation_and_conflict(client, db, org, court, user, other_user):
    created = book(client, user, court, 10)
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "PENDING_PAYMENT"
    assert body["total_cents"] in (2000, 3000)  # weekend slots are peak
    assert body["expires_at"] is not None

    taken = book(client, other_user, court, 10)
    assert taken.status_code == 409
    assert taken.json()["error"] == "SLOT_CONFLICT"
    assert db.query(Booking).count() == 1


def test_server_price_wins(client, org, court, user):
    response = client.post(f"{ORG}/bookings", json={"slots": [slot_body(court, 10, price=1)]}, headers=auth(user))
    assert response.status_code == 201
    assert response.json()["total_cents"] in (2000, 3000)


def test_validation_error_body(client, org, court, user):
    response = book(client, user, court, 23)
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["message"]


def test_consecutive_reservation(client, org, court, user):
    response = client.post(
        f"{ORG}/bookings/consecutive",
        json={"court_id": str(court.id), "booking_date": tomorrow().isoformat(), "start_time": "10:00", "slots": 2},
        headers=auth(user),
    )
    assert response.status_code == 201
    assert response.json()["total_cents"] in (4000, 6000)


def test_rate_limited(client, org, court, user, limiter):
    limiter.max_attempts = 1
    assert book(client, user, court, 10).status_code == 201

    response = book(client, user, court, 12)
    assert response.status_code == 429
    assert response.json()["error"] == "RATE_LIMITED"
    assert int(response.headers["retry-after"]) > 0


def test_guest_rejected_without_side_effects(client, db, org, court):
    response = client.post(
        f"{ORG}/guest-bookings",
        json={"guest_name": "Walk In", "guest_email": "walkin@example.com", "slots": [slot_body(court, 10)]},
    )
    assert response.status_code == 403
    assert db.query(Booking).count() == 0
    assert db.query(Guest).count() == 0


def test_guest_booking_gets_payment_link(client, db, org, court, gateway):
    org.allow_guest_bookings = True
    db.commit()
    response = client.post(
        f"{ORG}/guest-bookings",
        json={"guest_name": "Walk In", "guest_email": "walkin@example.com", "slots": [slot_body(court, 10)]},
    )
    assert response.status_code == 201
    assert response.json()["payment_url"] == "https://pay.example.com/pr_1"
    assert gateway.created[0]["email"] == "walkin@example.com"


def test_guest_hold_released_when_checkout_fails(client, db, org, court):
    class UnreachableGateway(FakeGateway):
        def create_payment(self, amount_cents, currency, metadata):
            raise PaymentGatewayError("Payment provider unavailable")

    org.allow_guest_bookings = True
    db.commit()
    app.dependency_overrides[get_payment_gateway] = lambda: UnreachableGateway()

    body = {"guest_name": "Walk In", "guest_email": "walkin@example.com", "slots": [slot_body(court, 10)]}
    response = client.post(f"{ORG}/guest-bookings", json=body)
    assert response.status_code == 502
    assert response.json()["error"] == "PAYMENT_GATEWAY_ERROR"

    booking = db.query(Booking).one()
    db.refresh(booking)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.expires_at is None
    assert booking.cancel_reason == "Payment could not be started"

    # The slot is free again for the next caller
    app.dependency_overrides[get_payment_gateway] = lambda: FakeGateway()
    assert client.post(f"{ORG}/guest-bookings", json=body).status_code == 201


# ---------------------------------------------------------------------------
# My bookings
# ---------------------------------------------------------------------------


def test_list_and_get_own_bookings(client, org, court, user, other_user):
    booking_id = book(client, user, court, 10).json()["booking_id"]

    listing = client.get(f"{API}/bookings/", headers=auth(user)).json()
    assert listing["total"] == 1
    assert listing["data"][0]["id"] == booking_id

    assert client.get(f"{API}/bookings/{booking_id}", headers=auth(user)).status_code == 200
    assert client.get(f"{API}/bookings/{booking_id}", headers=auth(other_user)).status_code == 404


def test_cancel_own_booking(client, org, court, user):
    booking_id = book(client, user, court, 10).json()["booking_id"]
    response = client.patch(f"{API}/bookings/{booking_id}/cancel", json={"reason": "Rain"}, headers=auth(user))
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert response.json()["cancel_reason"] == "Rain"

    again = client.patch(f"{API}/bookings/{booking_id}/cancel", headers=auth(user))
    assert again.status_code == 409
    assert again.json()["error"] == "INVALID_TRANSITION"


def test_pay_then_webhook(client, org, court, user):
    booking_id = book(client, user, court, 10).json()["booking_id"]

    checkout = client.post(f"{API}/bookings/{booking_id}/pay", headers=auth(user))
    assert checkout.status_code == 200
    assert checkout.json()["external_id"] == "pr_1"

    payload = {"reference_number": booking_id, "payment_id": "pay_1", "status": "completed"}
    assert client.post(f"{API}/payments/webhook", json=payload).status_code == 403

    ack = client.post(f"{API}/payments/webhook", json=payload, headers={"X-Webhook-Secret": "test-webhook-secret"})
    assert ack.status_code == 200
    assert ack.json() == {"success": True, "booking_status": "CONFIRMED"}

    status = client.get(f"{API}/bookings/{booking_id}/payment-status", headers=auth(user))
    assert status.json()["status"] == "CONFIRMED"


def test_webhook_for_cancelled_booking_is_acknowledged(client, org, court, user):
    booking_id = book(client, user, court, 10).json()["booking_id"]
    client.patch(f"{API}/bookings/{booking_id}/cancel", headers=auth(user))

    ack = client.post(
        f"{API}/payments/webhook",
        json={"reference_number": booking_id, "status": "completed"},
        headers={"X-Webhook-Secret": "test-webhook-secret"},
    )
    assert ack.status_code == 200
    assert ack.json() == {"success": False, "booking_status": "CANCELLED"}


def test_cron_sweep_requires_secret(client, org):
    assert client.post(f"{API}/cron/expire-bookings").status_code == 401
    response = client.post(f"{API}/cron/expire-bookings", headers={"Authorization": "Bearer test-cron-secret"})
    assert response.status_code == 200
    assert response.json() == {"expired_count": 0, "booking_ids": []}


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


def test_admin_routes_require_org_admin(client, org, user):
    response = client.get(f"{API}/admin/orgs/smash-club/bookings/", headers=auth(user))
    assert response.status_code == 403
    assert response.json()["error"] == "FORBIDDEN"


def test_admin_lists_and_cancels(client, org, court, user, admin):
    booking_id = book(client, user, court, 10).json()["booking_id"]

    listing = client.get(
        f"{API}/admin/orgs/smash-club/bookings/",
        params={"date": tomorrow().isoformat(), "court_id": str(court.id)},
        headers=auth(admin),
    ).json()
    assert listing["total"] == 1
    assert listing["data"][0]["user"]["email"] == "player@example.com"

    missing_reason = client.patch(
        f"{API}/admin/orgs/smash-club/bookings/{booking_id}/cancel", json={}, headers=auth(admin)
    )
    assert missing_reason.status_code == 400

    cancelled = client.patch(
        f"{API}/admin/orgs/smash-club/bookings/{booking_id}/cancel",
        json={"reason": "Maintenance"},
        headers=auth(admin),
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "CANCELLED"


def test_admin_blocks(client, org, court, admin, user):
    start = sgt(tomorrow(), 12)
    created = client.post(
        f"{API}/admin/orgs/smash-club/courts/{court.id}/blocks",
        json={"start_time": start.isoformat(), "end_time": (start + timedelta(hours=2)).isoformat(), "reason": "MAINTENANCE"},
        headers=auth(admin),
    )
    assert created.status_code == 201
    block_id = created.json()["id"]

    assert book(client, user, court, 13).status_code == 409
    assert len(client.get(f"{API}/admin/orgs/smash-club/blocks", headers=auth(admin)).json()) == 1

    deleted = client.delete(f"{API}/admin/orgs/smash-club/blocks/{block_id}", headers=auth(admin))
    assert deleted.status_code == 204
    assert book(client, user, court, 13).status_code == 201


def test_admin_recurring(client, org, court, admin):
    start = tomorrow()
    created = client.post(
        f"{API}/admin/orgs/smash-club/recurring-bookings/",
        json={
            "court_id": str(court.id),
            "title": "Coaching",
            "day_of_week": (start.weekday() + 1) % 7,
            "start_time": "07:00",
            "end_time": "08:00",
            "starts_on": start.isoformat(),
            "ends_on": (start + timedelta(days=20)).isoformat(),
        },
        headers=auth(admin),
    )
    assert created.status_code == 201
    body = created.json()
    assert body["created"] == 3
    assert body["skipped"] == 0

    patterns = client.get(f"{API}/admin/orgs/smash-club/recurring-bookings/", headers=auth(admin)).json()
    assert len(patterns) == 1

    cancelled = client.delete(
        f"{API}/admin/orgs/smash-club/recurring-bookings/{body['recurring_id']}", headers=auth(admin)
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["cancelled_count"] == 3
