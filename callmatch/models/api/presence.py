from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class PresenceResponse(BaseModel):
    """Response model for participant presence."""

    uid: str
    active_room_id: Optional[UUID]
    match_phase: str  # 'idle', 'matched'
    last_heartbeat_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)
