from typing import List, Optional

from pydantic import BaseModel, Field


class PairingResultResponse(BaseModel):
    """Outcome of one pairing transaction."""

    outcome: str  # 'paired', 'empty', 'invalid_entry', 'no_candidate', 'already_placed'
    room_id: Optional[str] = None
    users: List[str] = Field(default_factory=list)


class ForceMatchResponse(BaseModel):
    """Outcomes of an out-of-band pairing drain."""

    ok: bool
    rooms_created: int
    results: List[PairingResultResponse]


class SweepReportResponse(BaseModel):
    """Counts from one run of the reconciliation sweeps."""

    stale_rooms_removed: int
    dangling_presence_healed: int
    stale_queue_entries_removed: int
    expired_sessions_ended: int
    errors: int
