"""Base repository shared by the ledger repositories."""
from typing import Any, Dict, Generic, Iterable, Optional, Type, TypeVar
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from finance_ledger.db.session import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Repository over one model with an integer `id` primary key."""

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            db: Async database session shared with the calling service
        """
        self.model = model
        self.db = db

    async def get_by_ids(self, ids: Iterable[int]) -> Dict[int, ModelType]:
        """
        Load rows by id regardless of owner, keyed by id.

        Rows already in the session are refreshed from the database so that
        links written by another session are visible.
        """
        ids = list(ids)
        if not ids:
            return {}

        result = await self.db.execute(
            select(self.model)
            .where(self.model.id.in_(ids))
            .execution_options(populate_existing=True)
        )
        return {row.id: row for row in result.scalars().all()}

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count rows, optionally matching column == value filters."""
        query = select(func.count()).select_from(self.model)

        for key, value in (filters or {}).items():
            query = query.where(getattr(self.model, key) == value)

        result = await self.db.execute(query)
        return result.scalar_one()
