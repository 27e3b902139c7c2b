"""PaymentMethod model representing accounts/cards money is held in."""
from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey
from datetime import datetime

from finance_ledger.db.session import Base


class PaymentMethod(Base):
    """PaymentMethod model; every transaction's native amount is in its currency."""
    __tablename__ = "payment_methods"
    __table_args__ = {'schema': 'app'}
    
    # Primary Key
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Foreign Keys
    account_id = Column(Integer, ForeignKey("app.accounts.id"), nullable=False, index=True)
    
    # Payment Method Details
    name = Column(String, nullable=False)
    currency = Column(String(3), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=datetime.utcnow)
    
    def __repr__(self) -> str:
        return f"<PaymentMethod(id={self.id}, name={self.name}, currency={self.currency})>"
