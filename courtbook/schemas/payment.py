from typing import Literal, Optional
from pydantic import BaseModel, UUID4


# Gateway callback (POST /payments/webhook). reference_number is our booking id.
class PaymentWebhook(BaseModel):
    reference_number: UUID4
    payment_id: Optional[str] = None
    payment_request_id: Optional[str] = None
    status: Literal["completed", "failed", "pending", "expired"]
    amount: Optional[str] = None
    currency: Optional[str] = None


class PaymentWebhookAck(BaseModel):
    success: bool
    booking_status: Optional[str] = None
