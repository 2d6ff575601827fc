from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BlockRequest(BaseModel):
    """Request model for blocking another participant."""

    blocked_uid: str = Field(..., min_length=1)
    reason_code: Optional[str] = None
    note: Optional[str] = None
    source: str = "call"


class BlockResponse(BaseModel):
    """Response model for block data."""

    blocker_uid: str
    blocked_uid: str
    status: str  # 'active', 'inactive'
    reason_code: Optional[str]
    note: Optional[str]
    source: Optional[str]
    effect_scopes: List[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
