"""Transaction model representing ledger entries in the database."""
import enum
from datetime import datetime
from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
)

from finance_ledger.db.session import Base


class TransactionType(str, enum.Enum):
    """Closed set of ledger entry types."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class Transaction(Base):
    """
    Transaction model representing a single ledger entry.
    
    amount is expressed in the owner's base currency and native_amount in the
    payment method's currency. exchange_rate and base_currency are snapshots
    taken at creation and are never recomputed. Transfers are stored as two
    rows whose linked_transaction_id point at each other; one leg carries a
    negative amount (withdrawal) and the other a positive amount (deposit).
    """
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint(
            "(type = 'transfer' AND category_id IS NULL) OR "
            "(type IN ('income', 'expense') AND category_id IS NOT NULL AND linked_transaction_id IS NULL)",
            name="ck_transactions_type_links",
        ),
        CheckConstraint(
            "(type IN ('income', 'expense') AND amount > 0) OR (type = 'transfer' AND amount != 0)",
            name="ck_transactions_amount_valid",
        ),
        {'schema': 'app'}
    )
    
    # Primary Key
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Foreign Keys
    account_id = Column(Integer, ForeignKey("app.accounts.id"), nullable=False, index=True)
    payment_method_id = Column(Integer, ForeignKey("app.payment_methods.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("app.categories.id"), nullable=True, index=True)
    linked_transaction_id = Column(
        Integer,
        ForeignKey("app.transactions.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    
    # Entry
    type = Column(
        Enum(
            TransactionType,
            name="transaction_type",
            native_enum=False,
            length=10,
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=False,
        index=True
    )
    date = Column(Date, nullable=False, index=True)
    description = Column(String, nullable=True)
    
    # Amounts (write-once conversion snapshot)
    amount = Column(Numeric(12, 2), nullable=False)  # Base currency, sign-bearing for transfers
    native_amount = Column(Numeric(12, 2), nullable=False)  # Payment method currency
    exchange_rate = Column(Numeric(18, 8), nullable=False)  # Native -> base rate used at creation
    base_currency = Column(String(3), nullable=False)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    
    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, type={self.type}, amount={self.amount}, "
            f"linked={self.linked_transaction_id})>"
        )
