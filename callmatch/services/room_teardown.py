import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from callmatch.models.db.call_session_model import CallSessionModel
from callmatch.models.db.participant_model import ParticipantModel
from callmatch.models.db.queue_entry_model import QueueEntryModel
from callmatch.models.db.room_model import RoomModel
from callmatch.repositories.call_session_repository import CallSessionRepository
from callmatch.repositories.participant_repository import ParticipantRepository
from callmatch.repositories.queue_repository import QueueRepository
from callmatch.repositories.room_repository import RoomRepository

logger = logging.getLogger(__name__)


@dataclass
class TeardownResult:
    room_id: UUID
    room_removed: bool = False
    session_ended: bool = False
    released: List[str] = field(default_factory=list)
    members: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.room_removed or self.session_ended or bool(self.released)


class RoomTeardown:
    """The one cleanup path for ending a room, whoever triggers it.

    Explicit end, cancellation, natural expiry and every sweep call
    `teardown` inside their own transaction. It never commits. Applying it
    twice, or from two triggers in either order, leaves the same terminal
    state: no room row, session ended, members idle with no queue residue.

    Lock order is room, session, then per member queue entry before presence
    row. Participant-scoped writes take the last two in the same order.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.room_repo = RoomRepository(db)
        self.session_repo = CallSessionRepository(db)
        self.participant_repo = ParticipantRepository(db)
        self.queue_repo = QueueRepository(db)

    async def load(
        self, room_id: UUID
    ) -> Tuple[Optional[RoomModel], Optional[CallSessionModel]]:
        """Lock the room and its session for the rest of the transaction."""
        room = await self.room_repo.get(room_id, for_update=True)
        call_session = await self.session_repo.get(room_id, for_update=True)
        return room, call_session

    async def teardown(
        self,
        room_id: UUID,
        reason: str,
        now: datetime,
        room: Optional[RoomModel] = None,
        call_session: Optional[CallSessionModel] = None,
        loaded: bool = False,
    ) -> TeardownResult:
        """End the room `room_id` and unwind both members.

        Pass `loaded=True` with the already-locked `room` / `call_session`
        when the caller inspected them first.
        """
        if not loaded:
            room, call_session = await self.load(room_id)

        result = TeardownResult(room_id=room_id)

        if room is not None:
            members = room.users
        elif call_session is not None:
            members = call_session.users
        else:
            return result
        result.members = list(members)

        if call_session is not None and call_session.status != "ended":
            call_session.status = "ended"
            call_session.ended_at = now
            call_session.end_reason = reason
            result.session_ended = True

        for uid in members:
            entry, participant = await self._lock_member(uid)
            pointer = participant.active_room_id if participant else None

            if pointer is not None and pointer != room_id:
                # Already placed in a newer room; this teardown is stale for them
                continue
            if pointer is None and room is None:
                # Room already gone and this member is idle: any queue entry is a
                # fresh enqueue, not residue
                continue

            await self._unwind(entry, participant)
            result.released.append(uid)

        if room is not None:
            room.status = "ended"
            await self.db.delete(room)
            result.room_removed = True

        await self.db.flush()

        if result.changed:
            logger.info(
                "Tore down room %s reason=%s room_removed=%s session_ended=%s released=%s",
                room_id,
                reason,
                result.room_removed,
                result.session_ended,
                result.released,
            )
        return result

    async def release(self, uid: str, room_id: UUID) -> bool:
        """Return `uid` to idle if their pointer still names `room_id`.

        Used for members whose room and session are both gone, which
        `teardown` can no longer discover.
        """
        entry, participant = await self._lock_member(uid)
        if participant is None or participant.active_room_id != room_id:
            return False
        await self._unwind(entry, participant)
        await self.db.flush()
        return True

    async def _lock_member(
        self, uid: str
    ) -> Tuple[Optional[QueueEntryModel], Optional[ParticipantModel]]:
        # Queue entry before presence row, the same order pairing locks them in
        entry = await self.queue_repo.get(uid, for_update=True)
        participant = await self.participant_repo.get(uid, for_update=True)
        return entry, participant

    async def _unwind(
        self, entry: Optional[QueueEntryModel], participant: Optional[ParticipantModel]
    ) -> None:
        if participant is not None:
            participant.active_room_id = None
            participant.match_phase = "idle"
        if entry is not None:
            await self.db.delete(entry)
