import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from courtbook.db.session import get_db
from courtbook.api.deps import verify_webhook_secret
from courtbook.core.exceptions import InvalidTransitionError
from courtbook.schemas.payment import PaymentWebhook, PaymentWebhookAck
from courtbook.services.payments import handle_payment_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/webhook", response_model=PaymentWebhookAck, dependencies=[Depends(verify_webhook_secret)])
def payment_webhook(data: PaymentWebhook, db: Session = Depends(get_db)):
    """
    Gateway callback. `reference_number` is the booking id. A completion
    for a booking that already expired or was cancelled is acknowledged with
    `success: false` so the gateway stops retrying; it needs a manual refund.
    """
    try:
        booking = handle_payment_webhook(db, data)
    except InvalidTransitionError as e:
        logger.warning("Webhook for booking %s not applied: %s", data.reference_number, e.message)
        return PaymentWebhookAck(success=False, booking_status=e.details.get("status"))
    return PaymentWebhookAck(success=True, booking_status=booking.status.value)
