"""
Payment gateway integration.

The booking core only needs two things from a provider: open a checkout for
an amount, and report the status of a checkout. ``HitPayGateway`` does that
over HitPay's payment-request API; tests inject a fake with the same shape.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Protocol, Tuple
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from courtbook.core.config import settings
from courtbook.core.exceptions import InvalidTransitionError, NotFoundError, PaymentGatewayError
from courtbook.core.timezones import utcnow
from courtbook.db.errors import translate_storage_errors
from courtbook.models.booking import Booking, BookingStatus
from courtbook.models.payment import Payment, PaymentStatus
from courtbook.models.user import User
from courtbook.schemas.payment import PaymentWebhook
from courtbook.services.lifecycle import confirm_payment, expire_if_due, mark_payment_failed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    external_id: str
    redirect_url: str


class PaymentGateway(Protocol):
    def create_payment(self, amount_cents: int, currency: str, metadata: Dict[str, Any]) -> CheckoutSession:
        ...

    def get_payment_status(self, external_id: str) -> str:
        ...


class HitPayGateway:
    """HitPay payment requests (https://docs.hitpayapp.com)."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        redirect_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.redirect_url = redirect_url
        self._client = client or httpx.Client(
            timeout=timeout,
            headers={
                "X-BUSINESS-API-KEY": api_key,
                "X-Requested-With": "XMLHttpRequest",
            },
        )

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error("HitPay %s %s returned %s: %s", method, path, e.response.status_code, e.response.text)
            raise PaymentGatewayError("The payment provider rejected the request") from e
        except httpx.HTTPError as e:
            logger.error("HitPay %s %s failed: %s", method, path, e)
            raise PaymentGatewayError("The payment provider is unreachable. Please try again.") from e

    def create_payment(self, amount_cents: int, currency: str, metadata: Dict[str, Any]) -> CheckoutSession:
        form = {
            "amount": f"{amount_cents / 100:.2f}",
            "currency": currency.upper(),
            "reference_number": str(metadata["booking_id"]),
            "redirect_url": self.redirect_url,
        }
        if metadata.get("email"):
            form["email"] = metadata["email"]
        if metadata.get("name"):
            form["name"] = metadata["name"]
        data = self._request("POST", "/v1/payment-requests", data=form)
        return CheckoutSession(external_id=data["id"], redirect_url=data["url"])

    def get_payment_status(self, external_id: str) -> str:
        data = self._request("GET", f"/v1/payment-requests/{external_id}")
        return str(data.get("status", "pending")).lower()


_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """Process-wide HitPay client (FastAPI dependency)."""
    global _gateway
    if _gateway is None:
        _gateway = HitPayGateway(
            api_url=settings.HITPAY_API_URL,
            api_key=settings.HITPAY_API_KEY,
            redirect_url=settings.PAYMENT_REDIRECT_URL,
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
        )
    return _gateway


def _checkout_metadata(booking: Booking) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"booking_id": booking.id}
    if booking.user is not None:
        metadata["email"] = booking.user.email
        metadata["name"] = booking.user.full_name
    elif booking.guest is not None:
        metadata["email"] = booking.guest.email
        metadata["name"] = booking.guest.name
    return metadata


def start_checkout(
    db: Session,
    booking_id: UUID,
    user: Optional[User],
    gateway: PaymentGateway,
    now: Optional[datetime] = None,
) -> Tuple[Booking, CheckoutSession]:
    """
    Open a gateway checkout for a booking still awaiting payment and store
    the checkout id on its payment row. Overdue bookings are expired first.
    """
    now = now or utcnow()
    booking = expire_if_due(db, booking_id, now)
    if user is not None and booking.user_id != user.id:
        raise NotFoundError("Booking not found")
    if booking.status != BookingStatus.PENDING_PAYMENT:
        raise InvalidTransitionError(
            "This booking is not awaiting payment",
            details={"status": booking.status.value},
        )
    if booking.payment is None:
        raise NotFoundError("Payment record not found for this booking")

    session = gateway.create_payment(booking.total_cents, booking.currency, _checkout_metadata(booking))

    with translate_storage_errors(db, "start checkout"):
        booking.payment.external_payment_request_id = session.external_id
        booking.payment.payment_method = "hitpay"
        db.commit()
    logger.info("Checkout %s opened for booking %s", session.external_id, booking.id)
    return booking, session


def handle_payment_webhook(db: Session, payload: PaymentWebhook, now: Optional[datetime] = None) -> Booking:
    """Apply a gateway callback to the booking named by ``reference_number``."""
    now = now or utcnow()
    raw = payload.model_dump(mode="json")
    if payload.status == "completed":
        return confirm_payment(db, payload.reference_number, payload.payment_id, raw, now)
    if payload.status == "failed":
        return mark_payment_failed(db, payload.reference_number, raw)
    if payload.status == "expired":
        return expire_if_due(db, payload.reference_number, now)
    booking = db.query(Booking).filter(Booking.id == payload.reference_number).first()
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


def sync_payment_status(
    db: Session,
    booking_id: UUID,
    gateway: PaymentGateway,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Poll the gateway for a pending booking (the return page does this in
    case the webhook is late) and apply a completed payment.
    """
    now = now or utcnow()
    payment = db.query(Payment).filter(Payment.booking_id == booking_id).first()
    if payment is None:
        raise NotFoundError("Payment record not found for this booking")
    if payment.status != PaymentStatus.PENDING or not payment.external_payment_request_id:
        return expire_if_due(db, booking_id, now)

    status = gateway.get_payment_status(payment.external_payment_request_id)
    if status == "completed":
        return confirm_payment(db, booking_id, now=now)
    return expire_if_due(db, booking_id, now)
