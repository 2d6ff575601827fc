from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import delete, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from callmatch.models.api.queue import QueueEntryResponse
from callmatch.models.db.queue_entry_model import QueueEntryModel
from callmatch.repositories.base_repository import BaseRepository

WANT_ANY = "any"


class QueueRepository(BaseRepository[QueueEntryModel, QueueEntryResponse]):
    """Repository for matching queue operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, QueueEntryModel)

    async def oldest_waiting(self) -> Optional[QueueEntryModel]:
        """Lock and return the longest-waiting entry, skipping rows another
        pairing transaction already holds."""
        query = (
            select(self.model_class)
            .where(self.model_class.status == "waiting")
            .order_by(self.model_class.enqueued_at, self.model_class.uid)
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def compatible_candidates(
        self, entry: QueueEntryModel, limit: int
    ) -> List[QueueEntryModel]:
        """Lock and return up to `limit` other waiting entries, oldest first,
        whose gender preferences are compatible with `entry`."""
        query = select(self.model_class).where(
            self.model_class.status == "waiting",
            self.model_class.uid != entry.uid,
            # The candidate must accept the entry's gender
            or_(
                self.model_class.want_gender == entry.gender,
                self.model_class.want_gender == WANT_ANY,
            ),
        )
        if entry.want_gender != WANT_ANY:
            query = query.where(self.model_class.gender == entry.want_gender)

        query = (
            query.order_by(self.model_class.enqueued_at, self.model_class.uid)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def delete_stale(self, cutoff: datetime) -> List[str]:
        """Delete entries whose last heartbeat is older than `cutoff`."""
        query = (
            select(self.model_class.uid)
            .where(self.model_class.last_heartbeat_at < cutoff)
            .with_for_update(skip_locked=True)
        )
        result = await self.db.execute(query)
        uids = list(result.scalars().all())
        if uids:
            await self.db.execute(
                delete(self.model_class)
                .where(self.model_class.uid.in_(uids))
                .execution_options(synchronize_session=False)
            )
        return uids

    def _to_pydantic(self, db_model: Any) -> QueueEntryResponse:
        """Convert SQLAlchemy QueueEntryModel to Pydantic QueueEntryResponse."""
        return QueueEntryResponse(
            uid=db_model.uid,
            status=db_model.status,
            gender=db_model.gender,
            want_gender=db_model.want_gender,
            exclusions=list(db_model.exclusions or []),
            enqueued_at=db_model.enqueued_at,
            last_heartbeat_at=db_model.last_heartbeat_at,
        )
