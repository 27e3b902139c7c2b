"""Repository for budgets."""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from finance_ledger.db.models.budget import Budget
from finance_ledger.repositories.base import BaseRepository


class BudgetRepository(BaseRepository[Budget]):
    """Repository for Budget entity operations."""
    
    def __init__(self, db: AsyncSession):
        super().__init__(Budget, db)
    
    async def get_for_account(self, budget_id: int, account_id: int) -> Optional[Budget]:
        """Get a budget only if it belongs to account_id."""
        result = await self.db.execute(
            select(Budget).where(Budget.id == budget_id, Budget.account_id == account_id)
        )
        return result.scalar_one_or_none()
