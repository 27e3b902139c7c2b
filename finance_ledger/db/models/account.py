"""Account model representing ledger owners in the database."""
from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime

from finance_ledger.core.constants import CurrencyConstants
from finance_ledger.db.session import Base


class Account(Base):
    """
    Account model representing a ledger owner.
    
    base_currency is the reporting currency every transaction amount is
    converted into at write time. It is treated as fixed once transactions exist.
    """
    __tablename__ = "accounts"
    __table_args__ = {'schema': 'app'}
    
    # Primary Key
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Account Details
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    base_currency = Column(String(3), nullable=False, default=CurrencyConstants.DEFAULT_BASE_CURRENCY)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=datetime.utcnow)
    
    def __repr__(self) -> str:
        return f"<Account(id={self.id}, name={self.name}, base_currency={self.base_currency})>"
