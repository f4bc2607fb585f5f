"""
Booking-domain exceptions.

Services raise these; the API layer turns them into HTTP responses through
``to_http_exception`` (see ``courtbook.main``). Every class carries a stable
``code`` so clients can branch on it without parsing messages.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class BookingError(Exception):
    """Base class for all booking-domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "BOOKING_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def headers(self) -> Optional[Dict[str, str]]:
        return None

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "error": self.code,
                "message": self.message,
                "details": self.details,
            },
            headers=self.headers(),
        )


class ValidationError(BookingError):
    """Malformed or out-of-range input; the caller can correct it."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class AuthorizationError(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class NotAuthenticatedError(AuthorizationError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "NOT_AUTHENTICATED"

    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class EmailUnverifiedError(AuthorizationError):
    code = "EMAIL_UNVERIFIED"


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class CourtUnavailableError(NotFoundError):
    """Court is inactive, missing, or belongs to another organization."""

    code = "COURT_UNAVAILABLE"


class ConflictError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class SlotConflictError(ConflictError):
    """One or more requested slots were taken or blocked; pick another."""

    code = "SLOT_CONFLICT"


class InvalidTransitionError(ConflictError):
    code = "INVALID_TRANSITION"


class RateLimitError(BookingError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMITED"

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message, details={"retry_after": retry_after})
        self.retry_after = retry_after

    def headers(self) -> Optional[Dict[str, str]]:
        return {"Retry-After": str(self.retry_after)}


class PersistenceError(BookingError):
    """Unexpected storage failure. Logged where raised."""

    code = "PERSISTENCE_ERROR"


class PaymentGatewayError(BookingError):
    """The payment provider rejected or failed a request."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "PAYMENT_GATEWAY_ERROR"
