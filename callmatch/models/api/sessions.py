from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ExtensionRecord(BaseModel):
    """One accepted extension in a session's audit trail."""

    actor: str
    seconds: int
    at: datetime


class ExtendSessionRequest(BaseModel):
    """Request model for extending a call session."""

    increment_seconds: int = Field(
        ..., gt=0, description="Seconds to add; must be one of the allowed values"
    )


class CallSessionResponse(BaseModel):
    """Response model for call session data."""

    id: UUID
    users: List[str]
    status: str  # 'active', 'ended'
    started_at: datetime
    ends_at: datetime
    max_minutes_cap: int
    extension_history: List[ExtensionRecord]
    ended_at: Optional[datetime] = None
    end_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class EndSessionResponse(BaseModel):
    """Outcome of an end-session request."""

    room_id: UUID
    room_removed: bool
    session_ended: bool
    released: List[str]
