"""Budget model representing monthly spending limits."""
from datetime import date, datetime
from typing import Optional
from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, Numeric
from sqlalchemy.orm import validates

from finance_ledger.db.session import Base


def normalize_period(value: date) -> date:
    """Return the first day of the month containing value."""
    return value.replace(day=1)


def next_period(period: date) -> date:
    """Return the first day of the month after period."""
    period = normalize_period(period)
    if period.month == 12:
        return date(period.year + 1, 1, 1)
    return date(period.year, period.month + 1, 1)


class Budget(Base):
    """
    Budget model: a monthly limit for exactly one category or one tag.
    
    period is always stored as the first day of its month.
    """
    __tablename__ = "budgets"
    __table_args__ = (
        CheckConstraint(
            "(category_id IS NOT NULL AND tag_id IS NULL) OR (category_id IS NULL AND tag_id IS NOT NULL)",
            name="ck_budgets_category_xor_tag",
        ),
        CheckConstraint("amount > 0", name="ck_budgets_amount_positive"),
        {'schema': 'app'}
    )
    
    # Primary Key
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Foreign Keys
    account_id = Column(Integer, ForeignKey("app.accounts.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("app.categories.id"), nullable=True, index=True)
    tag_id = Column(Integer, ForeignKey("app.tags.id"), nullable=True, index=True)
    
    # Limit (base currency) and month
    amount = Column(Numeric(12, 2), nullable=False)
    period = Column(Date, nullable=False)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=datetime.utcnow)
    
    @validates("period")
    def _normalize_period(self, key: str, value: Optional[date]) -> Optional[date]:
        return normalize_period(value) if value is not None else value
    
    def __repr__(self) -> str:
        return f"<Budget(id={self.id}, amount={self.amount}, period={self.period})>"
