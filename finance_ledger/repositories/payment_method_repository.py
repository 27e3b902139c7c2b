"""Repository for payment methods."""
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from finance_ledger.db.models.payment_method import PaymentMethod
from finance_ledger.repositories.base import BaseRepository


class PaymentMethodRepository(BaseRepository[PaymentMethod]):
    """Repository for PaymentMethod lookups scoped to an owner."""
    
    def __init__(self, db: AsyncSession):
        super().__init__(PaymentMethod, db)
    
    async def get_owned_by_ids(self, account_id: int, payment_method_ids: List[int]) -> Dict[int, PaymentMethod]:
        """Get the payment methods among payment_method_ids that belong to account_id, keyed by id."""
        if not payment_method_ids:
            return {}
        
        result = await self.db.execute(
            select(PaymentMethod).where(
                PaymentMethod.account_id == account_id,
                PaymentMethod.id.in_(payment_method_ids)
            )
        )
        return {pm.id: pm for pm in result.scalars().all()}
    
    async def get_currencies_for_account(self, account_id: int) -> List[str]:
        """Distinct currencies of an owner's active payment methods."""
        result = await self.db.execute(
            select(PaymentMethod.currency)
            .where(PaymentMethod.account_id == account_id, PaymentMethod.is_active.is_(True))
            .distinct()
        )
        return sorted(row[0] for row in result.all())
    
    async def get_active_currencies(self) -> List[str]:
        """Distinct currencies across all active payment methods."""
        result = await self.db.execute(
            select(PaymentMethod.currency)
            .where(PaymentMethod.is_active.is_(True))
            .distinct()
        )
        return sorted(row[0] for row in result.all())
