from datetime import datetime
from typing import Any, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from callmatch.models.api.sessions import CallSessionResponse, ExtensionRecord
from callmatch.models.db.call_session_model import CallSessionModel
from callmatch.repositories.base_repository import BaseRepository


class CallSessionRepository(BaseRepository[CallSessionModel, CallSessionResponse]):
    """Repository for call session operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, CallSessionModel)

    async def expired_active_ids(self, now: datetime) -> List[UUID]:
        """Ids of sessions still marked active whose deadline has passed."""
        query = select(self.model_class.id).where(
            self.model_class.status == "active",
            self.model_class.ends_at <= now,
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    def _to_pydantic(self, db_model: Any) -> CallSessionResponse:
        """Convert SQLAlchemy CallSessionModel to Pydantic CallSessionResponse."""
        return CallSessionResponse(
            id=db_model.id,
            users=db_model.users,
            status=db_model.status,
            started_at=db_model.started_at,
            ends_at=db_model.ends_at,
            max_minutes_cap=db_model.max_minutes_cap,
            extension_history=[
                ExtensionRecord(**record) for record in db_model.extension_history or []
            ],
            ended_at=db_model.ended_at,
            end_reason=db_model.end_reason,
        )
