import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from callmatch.auth import get_current_uid
from callmatch.database import get_db
from callmatch.errors import AlreadyPlacedError
from callmatch.models.api.queue import CancelResponse, EnqueueRequest, QueueEntryResponse
from callmatch.services.pairing_service import trigger_pairing
from callmatch.services.queue_service import QueueService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=QueueEntryResponse)
async def enqueue(
    request: EnqueueRequest,
    background_tasks: BackgroundTasks,
    uid: str = Depends(get_current_uid),
    db: AsyncSession = Depends(get_db),
) -> QueueEntryResponse:
    """
    Join (or refresh a place in) the matching queue.

    A pairing attempt is scheduled once the entry is stored.
    """
    try:
        service = QueueService(db)
        entry = await service.enqueue(uid, request)
    except AlreadyPlacedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception:
        logger.exception("Enqueue failed for %s", uid)
        raise HTTPException(status_code=500, detail="Internal server error")

    background_tasks.add_task(trigger_pairing)
    return entry


@router.get("", response_model=Optional[QueueEntryResponse])
async def get_queue_entry(
    uid: str = Depends(get_current_uid), db: AsyncSession = Depends(get_db)
) -> Optional[QueueEntryResponse]:
    """Caller's current queue entry, or null when not queued."""
    service = QueueService(db)
    return await service.get_entry(uid)


@router.delete("", response_model=CancelResponse)
async def cancel(
    uid: str = Depends(get_current_uid), db: AsyncSession = Depends(get_db)
) -> CancelResponse:
    """Leave the queue, or tear down the caller's room if already paired."""
    try:
        service = QueueService(db)
        return await service.cancel(uid)
    except Exception:
        logger.exception("Cancel failed for %s", uid)
        raise HTTPException(status_code=500, detail="Internal server error")
