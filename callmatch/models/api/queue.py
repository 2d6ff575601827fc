from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EnqueueRequest(BaseModel):
    """Request model for joining the matching queue."""

    gender: str = Field(..., min_length=1, description="Caller's gender")
    want_gender: str = Field(
        ..., min_length=1, description="Wanted partner gender, or 'any'"
    )
    exclusions: List[str] = Field(
        default_factory=list, description="Uids the caller refuses to be paired with"
    )


class QueueEntryResponse(BaseModel):
    """Response model for queue entry data."""

    uid: str
    status: str  # 'waiting', 'locking', 'error'
    gender: Optional[str]
    want_gender: Optional[str]
    exclusions: List[str]
    enqueued_at: datetime
    last_heartbeat_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CancelResponse(BaseModel):
    """Outcome of a cancel request."""

    removed_queue_entry: bool
    ended_room_id: Optional[str] = None


class HeartbeatResponse(BaseModel):
    """Which liveness record a heartbeat refreshed."""

    target: str  # 'room', 'queue', 'none'
    room_id: Optional[str] = None
