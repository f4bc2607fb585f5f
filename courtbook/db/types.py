"""
Column types that behave the same on PostgreSQL and SQLite.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import DateTime, TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp, always handed to and returned from the database
    as UTC.

    PostgreSQL keeps the offset (timestamptz); SQLite drops it, so naive values
    coming back are tagged as UTC. Naive values going in are rejected: every
    instant in the booking core must already be absolute.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return value
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires a timezone-aware datetime")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
