from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from callmatch.database import Base

ModelType = TypeVar("ModelType", bound=Base)
PydanticType = TypeVar("PydanticType", bound=BaseModel)


class BaseRepository(Generic[ModelType, PydanticType]):
    """Generic base repository with common data-access operations.

    Repositories never commit. Every state transition spans several records,
    so the calling service owns the transaction boundary.
    """

    def __init__(self, db: AsyncSession, model_class: Any):
        self.db = db
        self.model_class = model_class

    async def get(self, key: Any, for_update: bool = False) -> Optional[ModelType]:
        """Get a single record by primary key, optionally row-locked.

        Always reads through to the database: another transaction may have
        deleted the row since this session last saw it.
        """
        return await self.db.get(
            self.model_class,
            key,
            populate_existing=True,
            with_for_update=True if for_update else None,
        )

    async def get_response(self, key: Any) -> Optional[PydanticType]:
        """Get a single record by primary key as its API model."""
        db_model = await self.get(key)
        return self._to_pydantic(db_model) if db_model else None

    def add(self, db_model: ModelType) -> ModelType:
        """Stage a new record in the current transaction."""
        self.db.add(db_model)
        return db_model

    def _to_pydantic(self, db_model: ModelType) -> PydanticType:
        """Convert SQLAlchemy model to Pydantic model.

        This should be overridden in subclasses for specific conversion logic.
        """
        raise NotImplementedError
