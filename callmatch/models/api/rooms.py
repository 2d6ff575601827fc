from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class RoomResponse(BaseModel):
    """Response model for room data."""

    id: UUID
    users: List[str]
    status: str  # 'pending', 'active', 'ended'
    created_at: datetime
    heartbeat: Dict[str, Optional[datetime]]

    model_config = ConfigDict(from_attributes=True)


class VoiceTokenResponse(BaseModel):
    """Voice transport credentials for an active room."""

    token: str
    channel: str
    uid: str
    expire_seconds: int
