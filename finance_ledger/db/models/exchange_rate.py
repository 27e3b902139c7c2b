"""ExchangeRate model representing cached currency exchange rates in the database."""
from sqlalchemy import Boolean, Column, Integer, String, Numeric, DateTime, Index, UniqueConstraint
from datetime import datetime

from finance_ledger.db.session import Base


class ExchangeRate(Base):
    """
    ExchangeRate model: one cached quote per ordered (from, to) currency pair.
    
    Inverse pairs are stored as independent rows. Rows are upserted in place,
    flagged stale by the periodic sweep and never deleted by the ledger core.
    """
    __tablename__ = "exchange_rates"
    __table_args__ = (
        UniqueConstraint('from_currency', 'to_currency', name='uq_exchange_rates_currency_pair'),
        Index('ix_exchange_rates_expires_at', 'expires_at'),
        {'schema': 'app'}
    )
    
    # Primary Key
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Currency Pair (ordered, not symmetric)
    from_currency = Column(String(3), nullable=False)  # e.g., "USD"
    to_currency = Column(String(3), nullable=False)  # e.g., "EUR"
    
    # Exchange Rate: 1 FromCurrency = Rate ToCurrency
    rate = Column(Numeric(18, 8), nullable=False)
    
    # Source tag and provider
    source = Column(String(20), nullable=False)  # "manual" or "api"
    api_provider = Column(String(50), nullable=True)
    
    # Freshness metadata
    fetched_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)  # NULL for manual rates
    is_stale = Column(Boolean, nullable=False, default=False)
    error_count = Column(Integer, nullable=False, default=0)  # Consecutive fetch failures
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=datetime.utcnow)
    
    def __repr__(self) -> str:
        return (
            f"<ExchangeRate(id={self.id}, {self.from_currency}/{self.to_currency}={self.rate}, "
            f"source={self.source}, stale={self.is_stale})>"
        )
