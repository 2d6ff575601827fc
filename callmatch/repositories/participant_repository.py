from typing import Any, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from callmatch.models.api.presence import PresenceResponse
from callmatch.models.db.participant_model import ParticipantModel
from callmatch.models.db.room_model import RoomModel
from callmatch.repositories.base_repository import BaseRepository


class ParticipantRepository(BaseRepository[ParticipantModel, PresenceResponse]):
    """Repository for participant presence operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ParticipantModel)

    async def get_or_create(
        self, uid: str, for_update: bool = False
    ) -> ParticipantModel:
        """Return the presence row for `uid`, staging an idle one if missing."""
        participant = await self.get(uid, for_update=for_update)
        if participant:
            return participant
        return self.add(
            ParticipantModel(uid=uid, active_room_id=None, match_phase="idle")
        )

    async def dangling_uids(self) -> List[str]:
        """Participants whose room pointer references a room that no longer exists."""
        query = (
            select(self.model_class.uid)
            .outerjoin(RoomModel, RoomModel.id == self.model_class.active_room_id)
            .where(
                self.model_class.active_room_id.is_not(None),
                RoomModel.id.is_(None),
            )
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    def _to_pydantic(self, db_model: Any) -> PresenceResponse:
        """Convert SQLAlchemy ParticipantModel to Pydantic PresenceResponse."""
        return PresenceResponse(
            uid=db_model.uid,
            active_room_id=db_model.active_room_id,
            match_phase=db_model.match_phase,
            last_heartbeat_at=db_model.last_heartbeat_at,
        )
