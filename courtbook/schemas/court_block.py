from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, UUID4, AwareDatetime
from datetime import datetime

from courtbook.models.court import BlockReason


# Court block: Create (POST /admin/orgs/{slug}/courts/{id}/blocks)
class CourtBlockCreate(BaseModel):
    start_time: AwareDatetime
    end_time: AwareDatetime
    reason: BlockReason = BlockReason.OTHER
    description: Optional[str] = Field(default=None, max_length=500)


class CourtBlock(BaseModel):
    id: UUID4
    court_id: UUID4
    start_time: datetime
    end_time: datetime
    reason: BlockReason
    description: Optional[str] = None
    created_by_id: Optional[UUID4] = None

    model_config = ConfigDict(from_attributes=True)
