from typing import Any, Dict, Optional, List, Generic, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


# Paginated response wrapper: used by all list endpoints
class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int
    total_pages: int


# Error body produced for every BookingError (see courtbook.main)
class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None


class SweepResult(BaseModel):
    expired_count: int
    booking_ids: List[str] = []
