import httpx
import pytest

from courtbook.core.exceptions import InvalidTransitionError, NotFoundError, PaymentGatewayError
from courtbook.models import BookingStatus, PaymentStatus
from courtbook.schemas.payment import PaymentWebhook
from courtbook.services.payments import HitPayGateway, handle_payment_webhook, start_checkout, sync_payment_status
from courtbook.services.reservation import Principal, RequestedSlot, create_reservation

from tests.conftest import NOW, TUESDAY, FakeGateway, later, sgt


@pytest.fixture
def pending(db, org, court, user):
    slot = RequestedSlot(court.id, sgt(TUESDAY, 18), sgt(TUESDAY, 19))
    return create_reservation(db, org, Principal(user=user), [slot], now=NOW)


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


def test_start_checkout_records_gateway_id(db, pending, user, gateway):
    booking, session = start_checkout(db, pending.id, user, gateway, now=later(1))

    assert session.redirect_url == "https://pay.example.com/pr_1"
    assert booking.payment.external_payment_request_id == "pr_1"
    assert booking.payment.payment_method == "hitpay"
    assert gateway.created[0]["amount_cents"] == 3000
    assert gateway.created[0]["email"] == "player@example.com"


def test_checkout_for_someone_elses_booking(db, pending, other_user, gateway):
    with pytest.raises(NotFoundError):
        start_checkout(db, pending.id, other_user, gateway, now=later(1))
    assert gateway.created == []


def test_checkout_after_deadline_expires_booking(db, pending, user, gateway):
    with pytest.raises(InvalidTransitionError):
        start_checkout(db, pending.id, user, gateway, now=later(11))
    db.refresh(pending)
    assert pending.status == BookingStatus.EXPIRED
    assert gateway.created == []


# ---------------------------------------------------------------------------
# Webhook and polling
# ---------------------------------------------------------------------------


def webhook(booking, status, **kwargs):
    return PaymentWebhook(reference_number=booking.id, status=status, **kwargs)


def test_completed_webhook_confirms(db, pending):
    booking = handle_payment_webhook(db, webhook(pending, "completed", payment_id="pay_9"), now=later(2))
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.payment.external_reference == "pay_9"
    assert booking.payment.webhook_payload["status"] == "completed"


def test_failed_webhook_keeps_hold(db, pending):
    booking = handle_payment_webhook(db, webhook(pending, "failed"), now=later(2))
    assert booking.status == BookingStatus.PENDING_PAYMENT
    assert booking.payment.status == PaymentStatus.FAILED


def test_expired_webhook_only_expires_overdue(db, pending):
    assert handle_payment_webhook(db, webhook(pending, "expired"), now=later(2)).status == BookingStatus.PENDING_PAYMENT
    assert handle_payment_webhook(db, webhook(pending, "expired"), now=later(11)).status == BookingStatus.EXPIRED


def test_completed_webhook_after_expiry(db, pending):
    handle_payment_webhook(db, webhook(pending, "expired"), now=later(11))
    with pytest.raises(InvalidTransitionError):
        handle_payment_webhook(db, webhook(pending, "completed"), now=later(12))


def test_sync_confirms_completed_checkout(db, pending, user):
    gateway = FakeGateway(status="completed")
    start_checkout(db, pending.id, user, gateway, now=later(1))
    assert sync_payment_status(db, pending.id, gateway, now=later(2)).status == BookingStatus.CONFIRMED


def test_sync_without_checkout_only_checks_deadline(db, pending):
    gateway = FakeGateway(status="completed")
    assert sync_payment_status(db, pending.id, gateway, now=later(2)).status == BookingStatus.PENDING_PAYMENT


# ---------------------------------------------------------------------------
# HitPay client
# ---------------------------------------------------------------------------


def _hitpay(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HitPayGateway("https://api.test", "key", "https://app.test/return", client=client)


def test_hitpay_create_payment():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = request.content.decode()
        return httpx.Response(201, json={"id": "pr_42", "url": "https://checkout.test/pr_42"})

    session = _hitpay(handler).create_payment(3050, "sgd", {"booking_id": "b-1", "email": "a@example.com"})

    assert session.external_id == "pr_42"
    assert session.redirect_url == "https://checkout.test/pr_42"
    assert seen["url"] == "https://api.test/v1/payment-requests"
    assert "amount=30.50" in seen["body"]
    assert "currency=SGD" in seen["body"]
    assert "reference_number=b-1" in seen["body"]


def test_hitpay_status_is_lowercased():
    gateway = _hitpay(lambda request: httpx.Response(200, json={"status": "COMPLETED"}))
    assert gateway.get_payment_status("pr_42") == "completed"


def test_hitpay_errors_become_gateway_errors():
    gateway = _hitpay(lambda request: httpx.Response(422, json={"message": "bad amount"}))
    with pytest.raises(PaymentGatewayError):
        gateway.create_payment(100, "SGD", {"booking_id": "b-1"})

    def unreachable(request):
        raise httpx.ConnectError("no route", request=request)

    with pytest.raises(PaymentGatewayError):
        _hitpay(unreachable).get_payment_status("pr_42")
