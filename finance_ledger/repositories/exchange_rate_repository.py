"""Repository for cached exchange rates (the rate store)."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from finance_ledger.db.models.exchange_rate import ExchangeRate
from finance_ledger.repositories.base import BaseRepository

# Dialects with a native INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ExchangeRateRepository(BaseRepository[ExchangeRate]):
    """
    Persistent cache of exchange rates keyed by ordered (from, to) pair.
    
    Writes are last-write-wins upserts: concurrent writers race on which value
    is kept but never produce a second row for the same pair.
    """
    
    def __init__(self, db: AsyncSession):
        super().__init__(ExchangeRate, db)
    
    async def lookup(self, from_currency: str, to_currency: str) -> Optional[ExchangeRate]:
        """Get the cached row for a pair regardless of freshness."""
        result = await self.db.execute(
            select(ExchangeRate)
            .where(
                ExchangeRate.from_currency == from_currency,
                ExchangeRate.to_currency == to_currency
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
    
    async def upsert(
        self,
        from_currency: str,
        to_currency: str,
        rate: Decimal,
        source: str,
        fetched_at: Optional[datetime],
        expires_at: Optional[datetime],
        api_provider: Optional[str] = None
    ) -> ExchangeRate:
        """
        Insert or overwrite the row for a pair.
        
        A successful write always clears is_stale and resets error_count.
        """
        values = {
            "from_currency": from_currency,
            "to_currency": to_currency,
            "rate": rate,
            "source": source,
            "api_provider": api_provider,
            "fetched_at": fetched_at,
            "expires_at": expires_at,
            "is_stale": False,
            "error_count": 0,
        }
        
        insert_for_dialect = _UPSERT_INSERTS.get(self._dialect_name())
        
        if insert_for_dialect is not None:
            stmt = insert_for_dialect(ExchangeRate).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[ExchangeRate.from_currency, ExchangeRate.to_currency],
                set_={
                    "rate": stmt.excluded.rate,
                    "source": stmt.excluded.source,
                    "api_provider": stmt.excluded.api_provider,
                    "fetched_at": stmt.excluded.fetched_at,
                    "expires_at": stmt.excluded.expires_at,
                    "is_stale": False,
                    "error_count": 0,
                    "updated_at": datetime.utcnow(),
                }
            )
            await self.db.execute(stmt)
        else:
            existing = await self.lookup(from_currency, to_currency)
            if existing is None:
                self.db.add(ExchangeRate(**values))
            else:
                for key, value in values.items():
                    setattr(existing, key, value)
        
        await self.db.flush()
        return await self.lookup(from_currency, to_currency)
    
    async def increment_error_count(self, from_currency: str, to_currency: str) -> None:
        """Record one more consecutive fetch failure for a pair."""
        await self.db.execute(
            update(ExchangeRate)
            .where(
                ExchangeRate.from_currency == from_currency,
                ExchangeRate.to_currency == to_currency
            )
            .values(error_count=ExchangeRate.error_count + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
    
    async def mark_expired_as_stale(self, now: datetime) -> int:
        """
        Flag every expiring row past its expires_at as stale.
        
        Rows already flagged are skipped, so repeated sweeps return 0.
        Manual rows (no expires_at) are never flagged.
        """
        result = await self.db.execute(
            update(ExchangeRate)
            .where(
                ExchangeRate.expires_at.is_not(None),
                ExchangeRate.expires_at <= now,
                ExchangeRate.is_stale.is_(False)
            )
            .values(is_stale=True)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        return result.rowcount or 0
    
    async def lookup_fresh_for_base(self, base_currency: str, now: datetime) -> List[ExchangeRate]:
        """Get all unexpired rows quoted from one currency."""
        result = await self.db.execute(
            select(ExchangeRate)
            .where(
                ExchangeRate.from_currency == base_currency,
                ExchangeRate.is_stale.is_(False),
                or_(ExchangeRate.expires_at.is_(None), ExchangeRate.expires_at > now)
            )
            .order_by(ExchangeRate.to_currency)
        )
        return list(result.scalars().all())
    
    async def has_stale_rates(self, currencies: List[str], base_currency: str, now: datetime) -> bool:
        """
        Check whether any currency -> base rate for the given currencies is unusable.
        
        A currency counts as stale when its row is flagged stale, past its
        expiry, or missing entirely.
        """
        foreign = {currency for currency in currencies if currency != base_currency}
        if not foreign:
            return False
        
        result = await self.db.execute(
            select(func.count(ExchangeRate.from_currency.distinct()))
            .where(
                ExchangeRate.from_currency.in_(foreign),
                ExchangeRate.to_currency == base_currency,
                ExchangeRate.is_stale.is_(False),
                or_(ExchangeRate.expires_at.is_(None), ExchangeRate.expires_at > now)
            )
        )
        return result.scalar_one() < len(foreign)
    
    def _dialect_name(self) -> str:
        bind = self.db.bind
        return bind.dialect.name if bind is not None else ""
