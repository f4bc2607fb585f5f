from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from courtbook.db.session import get_db
from courtbook.api.deps import verify_cron_secret
from courtbook.schemas.common import SweepResult
from courtbook.services.lifecycle import expire_stale_bookings

router = APIRouter(prefix="/cron", tags=["Cron"])


@router.post("/expire-bookings", response_model=SweepResult, dependencies=[Depends(verify_cron_secret)])
def expire_bookings(db: Session = Depends(get_db)):
    """External scheduler hook; same sweep the background task runs."""
    expired = expire_stale_bookings(db)
    return SweepResult(expired_count=len(expired), booking_ids=[str(i) for i in expired])
