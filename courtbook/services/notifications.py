"""
Booking notifications.

Delivery is fire-and-forget: a failing notifier is logged and never changes
the outcome of the booking operation that triggered it.
"""

import logging
from typing import Optional, Protocol

from courtbook.models.booking import Booking

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def booking_confirmed(self, booking: Booking) -> None:
        ...

    def booking_cancelled(self, booking: Booking, refund_cents: Optional[int] = None) -> None:
        ...

    def booking_expired(self, booking: Booking) -> None:
        ...


class LoggingNotifier:
    """Default notifier: writes one log line per event."""

    def booking_confirmed(self, booking: Booking) -> None:
        logger.info("Booking %s confirmed (%d %s)", booking.id, booking.total_cents, booking.currency)

    def booking_cancelled(self, booking: Booking, refund_cents: Optional[int] = None) -> None:
        if refund_cents:
            logger.info("Booking %s cancelled, refund due: %d %s", booking.id, refund_cents, booking.currency)
        else:
            logger.info("Booking %s cancelled", booking.id)

    def booking_expired(self, booking: Booking) -> None:
        logger.info("Booking %s expired before payment", booking.id)


_notifier: Notifier = LoggingNotifier()


def get_notifier() -> Notifier:
    return _notifier


def set_notifier(notifier: Notifier) -> None:
    global _notifier
    _notifier = notifier


def notify(event: str, booking: Booking, notifier: Optional[Notifier] = None, **kwargs) -> None:
    """Call ``notifier.<event>(booking, **kwargs)``; failures are logged, not raised."""
    target = notifier or get_notifier()
    try:
        getattr(target, event)(booking, **kwargs)
    except Exception:
        logger.exception("Notification %s failed for booking %s", event, booking.id)
