"""Translate SQLAlchemy failures into booking-domain errors at service boundaries."""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from courtbook.core.exceptions import BookingError, PersistenceError, SlotConflictError

logger = logging.getLogger(__name__)

# Messages from PostgreSQL/SQLite that mean "another transaction got there first"
_LOCK_CONFLICT_MARKERS = (
    "deadlock detected",
    "could not serialize access",
    "could not obtain lock",
    "lock timeout",
    "database is locked",
    "exclusion constraint",
)

SLOT_TAKEN_MESSAGE = "That slot was just taken. Please choose another time."


def is_lock_conflict(exc: SQLAlchemyError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _LOCK_CONFLICT_MARKERS)


@contextmanager
def translate_storage_errors(db: Session, action: str) -> Iterator[None]:
    """
    Roll back and re-raise as a domain error. Booking errors pass through
    unchanged (after rollback); lock/serialization failures become
    SlotConflictError; anything else from the storage layer becomes
    PersistenceError and is logged with its traceback.
    """
    try:
        yield
    except BookingError:
        db.rollback()
        raise
    except OperationalError as exc:
        db.rollback()
        if is_lock_conflict(exc):
            logger.info("Lock conflict during %s: %s", action, exc.orig)
            raise SlotConflictError(SLOT_TAKEN_MESSAGE) from exc
        logger.exception("Storage failure during %s", action)
        raise PersistenceError(f"Failed to {action}. Please try again.") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        if is_lock_conflict(exc):
            raise SlotConflictError(SLOT_TAKEN_MESSAGE) from exc
        logger.exception("Storage failure during %s", action)
        raise PersistenceError(f"Failed to {action}. Please try again.") from exc
