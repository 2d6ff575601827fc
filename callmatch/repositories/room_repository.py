from typing import Any, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from callmatch.models.api.rooms import RoomResponse
from callmatch.models.db.room_model import RoomModel
from callmatch.repositories.base_repository import BaseRepository


class RoomRepository(BaseRepository[RoomModel, RoomResponse]):
    """Repository for room operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, RoomModel)

    async def list_ids(self) -> List[UUID]:
        """All room ids; sweeps re-read each room under lock before acting."""
        result = await self.db.execute(select(self.model_class.id))
        return list(result.scalars().all())

    def _to_pydantic(self, db_model: Any) -> RoomResponse:
        """Convert SQLAlchemy RoomModel to Pydantic RoomResponse."""
        return RoomResponse(
            id=db_model.id,
            users=db_model.users,
            status=db_model.status,
            created_at=db_model.created_at,
            heartbeat=db_model.heartbeat,
        )
