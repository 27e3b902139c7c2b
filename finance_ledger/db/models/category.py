"""Category model used to classify income and expense transactions."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from datetime import datetime

from finance_ledger.db.session import Base


class Category(Base):
    """Category model (type is 'income' or 'expense')."""
    __tablename__ = "categories"
    __table_args__ = {'schema': 'app'}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("app.accounts.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(String(10), nullable=False, default="expense")
    
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    
    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name={self.name}, type={self.type})>"
