"""Models module initialization."""
from finance_ledger.db.models.account import Account
from finance_ledger.db.models.budget import Budget
from finance_ledger.db.models.category import Category
from finance_ledger.db.models.exchange_rate import ExchangeRate
from finance_ledger.db.models.payment_method import PaymentMethod
from finance_ledger.db.models.tag import Tag, transaction_tags
from finance_ledger.db.models.transaction import Transaction, TransactionType

__all__ = [
    "Account",
    "Budget",
    "Category",
    "ExchangeRate",
    "PaymentMethod",
    "Tag",
    "Transaction",
    "TransactionType",
    "transaction_tags",
]
