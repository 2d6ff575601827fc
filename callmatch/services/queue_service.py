import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from callmatch.clock import Clock, utcnow
from callmatch.errors import AlreadyPlacedError
from callmatch.models.api.presence import PresenceResponse
from callmatch.models.api.queue import (
    CancelResponse,
    EnqueueRequest,
    HeartbeatResponse,
    QueueEntryResponse,
)
from callmatch.models.db.queue_entry_model import QueueEntryModel
from callmatch.repositories.participant_repository import ParticipantRepository
from callmatch.repositories.queue_repository import QueueRepository
from callmatch.repositories.room_repository import RoomRepository
from callmatch.services.room_teardown import RoomTeardown

logger = logging.getLogger(__name__)


class QueueService:
    """Service for queue admission, cancellation and liveness heartbeats."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.queue_repo = QueueRepository(db)
        self.participant_repo = ParticipantRepository(db)
        self.room_repo = RoomRepository(db)
        self.teardown = RoomTeardown(db)

    async def enqueue(self, uid: str, request: EnqueueRequest) -> QueueEntryResponse:
        """
        Register or refresh the caller's queue entry:
        1. Lock the caller's queue entry, then their presence row
        2. Reject callers already placed in a room
        3. Create the entry, or refresh it (keeping its FIFO position if it
           was already waiting)

        The caller is expected to trigger pairing once this commits.
        """
        try:
            entry = await self.queue_repo.get(uid, for_update=True)
            presence = await self.participant_repo.get_or_create(uid, for_update=True)
            if presence.active_room_id is not None:
                raise AlreadyPlacedError(
                    f"Already placed in room {presence.active_room_id}"
                )

            now = self.clock()
            exclusions = self._normalize_exclusions(uid, request.exclusions)
            if entry is None:
                entry = self.queue_repo.add(
                    QueueEntryModel(uid=uid, enqueued_at=now, last_heartbeat_at=now)
                )
            elif entry.status != "waiting":
                entry.enqueued_at = now

            entry.status = "waiting"
            entry.gender = request.gender
            entry.want_gender = request.want_gender
            entry.exclusions = exclusions
            entry.last_heartbeat_at = now
            presence.last_heartbeat_at = now

            await self.db.flush()
            response = self.queue_repo._to_pydantic(entry)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Enqueued %s gender=%s want=%s exclusions=%d",
            uid,
            request.gender,
            request.want_gender,
            len(exclusions),
        )
        return response

    async def cancel(self, uid: str) -> CancelResponse:
        """
        Leave matching. Before pairing this drops the queue entry; after
        pairing it tears down the room for both members. Both converge on the
        same idle state, and repeating the call is harmless.
        """
        try:
            response = await self._leave_queue(uid)
            if response is None:
                # Placed in a room: release the participant locks and take the
                # room-first path every teardown uses
                await self.db.rollback()
                response = await self._leave_room(uid)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Cancelled %s removed_queue_entry=%s ended_room=%s",
            uid,
            response.removed_queue_entry,
            response.ended_room_id,
        )
        return response

    async def heartbeat(self, uid: str) -> HeartbeatResponse:
        """Refresh the caller's liveness on their room if placed, else on their
        queue entry."""
        try:
            now = self.clock()
            response = HeartbeatResponse(target="none")

            pointer = await self.participant_repo.get(uid)
            if pointer is not None and pointer.active_room_id is not None:
                room = await self.room_repo.get(pointer.active_room_id, for_update=True)
                if room is not None and room.has_member(uid):
                    room.touch_heartbeat(uid, now)
                    response = HeartbeatResponse(target="room", room_id=str(room.id))

            entry = None
            if response.target == "none":
                entry = await self.queue_repo.get(uid, for_update=True)
            presence = await self.participant_repo.get(uid, for_update=True)
            if presence is not None:
                presence.last_heartbeat_at = now
            if entry is not None:
                entry.last_heartbeat_at = now
                response = HeartbeatResponse(target="queue")

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return response

    async def get_presence(self, uid: str) -> PresenceResponse:
        presence = await self.participant_repo.get(uid)
        if presence is None:
            return PresenceResponse(
                uid=uid, active_room_id=None, match_phase="idle", last_heartbeat_at=None
            )
        return self.participant_repo._to_pydantic(presence)

    async def get_entry(self, uid: str) -> Optional[QueueEntryResponse]:
        return await self.queue_repo.get_response(uid)

    def _normalize_exclusions(self, uid: str, exclusions: List[str]) -> List[str]:
        """Deduplicate while keeping order; excluding yourself is meaningless."""
        seen = []
        for other in exclusions:
            if other and other != uid and other not in seen:
                seen.append(other)
        return seen

    async def _leave_queue(self, uid: str) -> Optional[CancelResponse]:
        """Drop the caller's queue entry. Returns None if they are placed."""
        entry = await self.queue_repo.get(uid, for_update=True)
        presence = await self.participant_repo.get(uid, for_update=True)
        if presence is not None and presence.active_room_id is not None:
            return None

        if entry is not None:
            await self.db.delete(entry)
        if presence is not None:
            presence.match_phase = "idle"
        return CancelResponse(removed_queue_entry=entry is not None)

    async def _leave_room(self, uid: str) -> CancelResponse:
        presence = await self.participant_repo.get(uid)
        room_id = presence.active_room_id if presence else None
        if room_id is None:
            # Torn down by someone else in between
            return CancelResponse(removed_queue_entry=False)

        result = await self.teardown.teardown(
            room_id, reason="cancelled", now=self.clock()
        )
        if uid not in result.released:
            # Pointer was dangling: the room and session are already gone
            await self.teardown.release(uid, room_id)
        return CancelResponse(
            removed_queue_entry=False,
            ended_room_id=str(room_id) if result.room_removed else None,
        )
