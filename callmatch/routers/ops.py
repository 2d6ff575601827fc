from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from callmatch.auth import require_ops_key
from callmatch.database import get_db
from callmatch.models.api.ops import (
    ForceMatchResponse,
    PairingResultResponse,
    SweepReportResponse,
)
from callmatch.services.pairing_service import PairingService
from callmatch.services.sweep_service import SweepService

router = APIRouter(dependencies=[Depends(require_ops_key)])


@router.post("/force-match", response_model=ForceMatchResponse)
async def force_match(
    rounds: int = Query(1, description="Maximum pairing rounds to run", ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> ForceMatchResponse:
    """Run the pairing transaction out-of-band (operations and debugging)."""
    service = PairingService(db)
    results = await service.drain(max_rounds=rounds)
    return ForceMatchResponse(
        ok=True,
        rooms_created=sum(1 for result in results if result.paired),
        results=[
            PairingResultResponse(
                outcome=result.outcome,
                room_id=str(result.room_id) if result.room_id else None,
                users=result.users,
            )
            for result in results
        ],
    )


@router.post("/sweeps", response_model=SweepReportResponse)
async def run_sweeps(db: AsyncSession = Depends(get_db)) -> SweepReportResponse:
    """Run all reconciliation sweeps now."""
    service = SweepService(db)
    report = await service.run_all()
    return SweepReportResponse(
        stale_rooms_removed=report.stale_rooms_removed,
        dangling_presence_healed=report.dangling_presence_healed,
        stale_queue_entries_removed=report.stale_queue_entries_removed,
        expired_sessions_ended=report.expired_sessions_ended,
        errors=report.errors,
    )
