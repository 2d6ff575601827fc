import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from callmatch.auth import get_current_uid
from callmatch.database import get_db
from callmatch.models.api.presence import PresenceResponse
from callmatch.models.api.queue import HeartbeatResponse
from callmatch.services.queue_service import QueueService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(
    uid: str = Depends(get_current_uid), db: AsyncSession = Depends(get_db)
) -> HeartbeatResponse:
    """Refresh the caller's liveness on their room or queue entry."""
    try:
        service = QueueService(db)
        return await service.heartbeat(uid)
    except Exception:
        logger.exception("Heartbeat failed for %s", uid)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/me/presence", response_model=PresenceResponse)
async def get_presence(
    uid: str = Depends(get_current_uid), db: AsyncSession = Depends(get_db)
) -> PresenceResponse:
    """Caller's room pointer and match phase."""
    service = QueueService(db)
    return await service.get_presence(uid)
