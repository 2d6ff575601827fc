import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from callmatch.auth import get_current_uid
from callmatch.database import get_db
from callmatch.errors import SelfBlockError
from callmatch.models.api.blocks import BlockRequest, BlockResponse
from callmatch.services.block_service import BlockService
from callmatch.services.pairing_service import trigger_pairing

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[BlockResponse])
async def list_blocks(
    include_inactive: bool = Query(
        False, description="Include revoked blocks kept for audit"
    ),
    uid: str = Depends(get_current_uid),
    db: AsyncSession = Depends(get_db),
) -> List[BlockResponse]:
    """Blocks created by the caller."""
    service = BlockService(db)
    return await service.list_blocks(uid, include_inactive=include_inactive)


@router.post("", response_model=BlockResponse)
async def create_block(
    request: BlockRequest,
    uid: str = Depends(get_current_uid),
    db: AsyncSession = Depends(get_db),
) -> BlockResponse:
    """Block another participant from ever being paired with the caller."""
    try:
        service = BlockService(db)
        return await service.block(uid, request)
    except SelfBlockError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Block by %s failed", uid)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/{blocked_uid}", response_model=BlockResponse)
async def revoke_block(
    blocked_uid: str,
    background_tasks: BackgroundTasks,
    uid: str = Depends(get_current_uid),
    db: AsyncSession = Depends(get_db),
) -> BlockResponse:
    """Revoke a block. The record stays on file as inactive."""
    service = BlockService(db)
    block = await service.unblock(uid, blocked_uid)
    if block is None:
        raise HTTPException(status_code=404, detail="Block not found")

    # A revoked block may make a waiting pair possible
    background_tasks.add_task(trigger_pairing)
    return block
