"""Account repository for ledger owners."""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from finance_ledger.db.models.account import Account
from finance_ledger.repositories.base import BaseRepository


class AccountRepository(BaseRepository[Account]):
    """Repository for Account entity operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(Account, db)

    async def get_base_currency(self, account_id: int) -> Optional[str]:
        """Get the reporting currency of an account, or None if it does not exist."""
        result = await self.db.execute(
            select(Account.base_currency).where(Account.id == account_id)
        )
        return result.scalar_one_or_none()
