from typing import Optional
from pydantic import BaseModel, ConfigDict, UUID4


# Compact user for nested responses (admin booking view)
class UserSummary(BaseModel):
    id: UUID4
    full_name: Optional[str] = None
    email: str

    model_config = ConfigDict(from_attributes=True)
