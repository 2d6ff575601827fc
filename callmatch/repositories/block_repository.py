from typing import Any, Iterable, List, Optional, Set

from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from callmatch.models.api.blocks import BlockResponse
from callmatch.models.db.block_model import BlockModel
from callmatch.repositories.base_repository import BaseRepository


class BlockRepository(BaseRepository[BlockModel, BlockResponse]):
    """Repository for block registry operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, BlockModel)

    async def get_pair(self, blocker_uid: str, blocked_uid: str) -> Optional[BlockModel]:
        return await self.get((blocker_uid, blocked_uid))

    async def blocked_counterparts(self, uid: str, others: Iterable[str]) -> Set[str]:
        """Return the subset of `others` with an active block in either
        direction with `uid`, using a single query."""
        others = [other for other in others if other != uid]
        if not others:
            return set()
        query = select(self.model_class).where(
            self.model_class.status == "active",
            or_(
                and_(
                    self.model_class.blocker_uid == uid,
                    self.model_class.blocked_uid.in_(others),
                ),
                and_(
                    self.model_class.blocked_uid == uid,
                    self.model_class.blocker_uid.in_(others),
                ),
            ),
        )
        result = await self.db.execute(query)
        counterparts = set()
        for block in result.scalars().all():
            counterparts.add(
                block.blocked_uid if block.blocker_uid == uid else block.blocker_uid
            )
        return counterparts

    async def list_by_blocker(
        self, blocker_uid: str, include_inactive: bool = False
    ) -> List[BlockModel]:
        query = select(self.model_class).where(
            self.model_class.blocker_uid == blocker_uid
        )
        if not include_inactive:
            query = query.where(self.model_class.status == "active")
        query = query.order_by(self.model_class.created_at.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    def _to_pydantic(self, db_model: Any) -> BlockResponse:
        """Convert SQLAlchemy BlockModel to Pydantic BlockResponse."""
        return BlockResponse(
            blocker_uid=db_model.blocker_uid,
            blocked_uid=db_model.blocked_uid,
            status=db_model.status,
            reason_code=db_model.reason_code,
            note=db_model.note,
            source=db_model.source,
            effect_scopes=list(db_model.effect_scopes or []),
            created_at=db_model.created_at,
            updated_at=db_model.updated_at,
        )
