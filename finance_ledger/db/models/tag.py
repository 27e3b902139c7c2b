"""Tag model and the transaction/tag association table."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Table
from datetime import datetime

from finance_ledger.db.session import Base


transaction_tags = Table(
    "transaction_tags",
    Base.metadata,
    Column("transaction_id", Integer, ForeignKey("app.transactions.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("app.tags.id", ondelete="CASCADE"), primary_key=True),
    schema="app",
)


class Tag(Base):
    """Tag model; budgets may target a tag instead of a category."""
    __tablename__ = "tags"
    __table_args__ = {'schema': 'app'}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("app.accounts.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    
    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name={self.name})>"
