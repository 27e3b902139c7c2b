"""Repository for ledger transactions."""
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from finance_ledger.db.models.tag import transaction_tags
from finance_ledger.db.models.transaction import Transaction, TransactionType
from finance_ledger.repositories.base import BaseRepository


class TransactionRepository(BaseRepository[Transaction]):
    """Repository for Transaction reads, aggregates and transfer-pair writes."""
    
    def __init__(self, db: AsyncSession):
        super().__init__(Transaction, db)
    
    async def get_for_account(self, transaction_id: int, account_id: int) -> Optional[Transaction]:
        """Get a transaction only if it belongs to account_id."""
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id, Transaction.account_id == account_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
    
    async def get_transfers(self, account_id: Optional[int] = None) -> List[Transaction]:
        """Get transfer legs, newest first, optionally for one owner."""
        query = select(Transaction).where(Transaction.type == TransactionType.TRANSFER)
        
        if account_id is not None:
            query = query.where(Transaction.account_id == account_id)
        
        result = await self.db.execute(
            query.order_by(Transaction.date.desc(), Transaction.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
    
    async def link_pair(self, first: Transaction, second: Transaction) -> None:
        """Point two flushed legs at each other."""
        first.linked_transaction_id = second.id
        second.linked_transaction_id = first.id
        await self.db.flush()
    
    async def delete_pair(self, first_id: int, second_id: int) -> int:
        """
        Delete both legs of a transfer.
        
        Links are cleared before the delete so the self-reference never
        points at a removed row. Returns the number of deleted rows.
        """
        ids = [first_id, second_id]
        await self.db.execute(
            update(Transaction)
            .where(Transaction.id.in_(ids))
            .values(linked_transaction_id=None)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(
            delete(Transaction)
            .where(Transaction.id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        return result.rowcount or 0
    
    async def sum_amount_by_type(self, account_id: int) -> Dict[TransactionType, Decimal]:
        """Sum of base-currency amount per transaction type for an owner."""
        result = await self.db.execute(
            select(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
            .where(Transaction.account_id == account_id)
            .group_by(Transaction.type)
        )
        return {row[0]: Decimal(str(row[1])) for row in result.all()}
    
    async def sum_native_amount_by_type(self, payment_method_id: int) -> Dict[TransactionType, Decimal]:
        """Sum of native amount per transaction type for one payment method."""
        result = await self.db.execute(
            select(Transaction.type, func.coalesce(func.sum(Transaction.native_amount), 0))
            .where(Transaction.payment_method_id == payment_method_id)
            .group_by(Transaction.type)
        )
        return {row[0]: Decimal(str(row[1])) for row in result.all()}
    
    async def get_budget_expenses(
        self,
        account_id: int,
        period_start: date,
        period_end: date,
        category_id: Optional[int] = None,
        tag_id: Optional[int] = None
    ) -> List[Transaction]:
        """
        Get expense transactions counted against a budget.
        
        Matches by category or, for tag budgets, through transaction_tags,
        within [period_start, period_end). Transfers and income never match.
        """
        query = select(Transaction).where(
            Transaction.account_id == account_id,
            Transaction.type == TransactionType.EXPENSE,
            Transaction.date >= period_start,
            Transaction.date < period_end
        )
        
        if category_id is not None:
            query = query.where(Transaction.category_id == category_id)
        elif tag_id is not None:
            query = query.join(
                transaction_tags, transaction_tags.c.transaction_id == Transaction.id
            ).where(transaction_tags.c.tag_id == tag_id)
        else:
            return []
        
        result = await self.db.execute(query.order_by(Transaction.date, Transaction.id))
        return list(result.scalars().all())
