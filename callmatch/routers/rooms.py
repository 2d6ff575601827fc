import logging
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from callmatch.auth import get_current_uid
from callmatch.database import get_db
from callmatch.errors import (
    NotRoomMemberError,
    PolicyViolationError,
    RoomNotActiveError,
    RoomNotFoundError,
    SessionNotActiveError,
    SessionNotFoundError,
    VoiceTokenError,
)
from callmatch.models.api.rooms import VoiceTokenResponse
from callmatch.models.api.sessions import (
    CallSessionResponse,
    EndSessionResponse,
    ExtendSessionRequest,
)
from callmatch.services.room_lifecycle_service import RoomLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{room_id}")
async def get_room(
    room_id: UUID,
    uid: str = Depends(get_current_uid),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Room snapshot for one of its members.

    Returns the room and, once someone has entered, its call session.
    A 404 means the room ended and was removed.
    """
    try:
        service = RoomLifecycleService(db)
        room, call_session = await service.get_room(uid, room_id)
    except RoomNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NotRoomMemberError as e:
        raise HTTPException(status_code=403, detail=str(e))

    return {
        "room": room.model_dump(mode="json"),
        "session": call_session.model_dump(mode="json") if call_session else None,
    }


@router.post("/{room_id}/enter", response_model=CallSessionResponse)
async def enter_room(
    room_id: UUID,
    uid: str = Depends(get_current_uid),
    db: AsyncSession = Depends(get_db),
) -> CallSessionResponse:
    """Activate the caller's room and start (or rejoin) its call session."""
    try:
        service = RoomLifecycleService(db)
        return await service.enter_room(uid, room_id)
    except RoomNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NotRoomMemberError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except Exception:
        logger.exception("Enter room %s failed for %s", room_id, uid)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/{room_id}/extend", response_model=CallSessionResponse)
async def extend_session(
    room_id: UUID,
    request: ExtendSessionRequest,
    uid: str = Depends(get_current_uid),
    db: AsyncSession = Depends(get_db),
) -> CallSessionResponse:
    """
    Extend the room's call session.

    The increment must be one of the allowed values and the result may not
    exceed the session cap.
    """
    try:
        service = RoomLifecycleService(db)
        return await service.extend_session(uid, room_id, request.increment_seconds)
    except PolicyViolationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NotRoomMemberError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except SessionNotActiveError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception:
        logger.exception("Extend session %s failed for %s", room_id, uid)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/{room_id}/end", response_model=EndSessionResponse)
async def end_session(
    room_id: UUID,
    uid: str = Depends(get_current_uid),
    db: AsyncSession = Depends(get_db),
) -> EndSessionResponse:
    """End the room's session. Succeeds even if the room is already gone."""
    try:
        service = RoomLifecycleService(db)
        return await service.end_session(uid, room_id)
    except NotRoomMemberError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except Exception:
        logger.exception("End session %s failed for %s", room_id, uid)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/{room_id}/voice-token", response_model=VoiceTokenResponse)
async def get_voice_token(
    room_id: UUID,
    uid: str = Depends(get_current_uid),
    db: AsyncSession = Depends(get_db),
) -> VoiceTokenResponse:
    """Voice transport token for a member of an active room."""
    try:
        service = RoomLifecycleService(db)
        return await service.issue_voice_token(uid, room_id)
    except RoomNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NotRoomMemberError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except RoomNotActiveError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except VoiceTokenError as e:
        raise HTTPException(status_code=502, detail=str(e))
