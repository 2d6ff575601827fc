import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from callmatch.clock import Clock, utcnow
from callmatch.errors import SelfBlockError
from callmatch.models.api.blocks import BlockRequest, BlockResponse
from callmatch.models.db.block_model import DEFAULT_EFFECT_SCOPES, BlockModel
from callmatch.repositories.block_repository import BlockRepository

logger = logging.getLogger(__name__)


class BlockService:
    """Service for the directional block registry."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.block_repo = BlockRepository(db)

    async def block(self, blocker_uid: str, request: BlockRequest) -> BlockResponse:
        """Create or re-activate the (blocker, blocked) record.

        Pairing consults the registry directly, so queue exclusions are left
        exactly as the participant submitted them.
        """
        if request.blocked_uid == blocker_uid:
            raise SelfBlockError("Cannot block yourself")

        try:
            now = self.clock()
            block = await self.block_repo.get_pair(blocker_uid, request.blocked_uid)
            if block is None:
                block = self.block_repo.add(
                    BlockModel(
                        blocker_uid=blocker_uid,
                        blocked_uid=request.blocked_uid,
                        effect_scopes=list(DEFAULT_EFFECT_SCOPES),
                        created_at=now,
                    )
                )
            block.status = "active"
            block.reason_code = request.reason_code
            block.note = request.note or ""
            block.source = request.source
            block.updated_at = now

            await self.db.flush()
            response = self.block_repo._to_pydantic(block)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("%s blocked %s", blocker_uid, request.blocked_uid)
        return response

    async def unblock(
        self, blocker_uid: str, blocked_uid: str
    ) -> Optional[BlockResponse]:
        """Revoke a block. The record is kept as inactive for audit.

        Returns None if there was never a block. Revocation can make a
        previously impossible pair possible, so callers should trigger pairing.
        """
        try:
            block = await self.block_repo.get_pair(blocker_uid, blocked_uid)
            if block is None:
                await self.db.rollback()
                return None
            block.status = "inactive"
            block.updated_at = self.clock()

            await self.db.flush()
            response = self.block_repo._to_pydantic(block)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("%s unblocked %s", blocker_uid, blocked_uid)
        return response

    async def list_blocks(
        self, blocker_uid: str, include_inactive: bool = False
    ) -> List[BlockResponse]:
        blocks = await self.block_repo.list_by_blocker(blocker_uid, include_inactive)
        return [self.block_repo._to_pydantic(block) for block in blocks]
